"""Versioning — semantic versions and the ``VERSION`` marker file."""

from specfirst.versioning.semver import (
    Comparison,
    Version,
    compare,
    increment,
    parse,
    validate,
)

__all__ = ["Comparison", "Version", "compare", "increment", "parse", "validate"]
