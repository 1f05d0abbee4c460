"""Version bump policy — change impact, changelog validation and the CI gate.

This package provides:
- Change impact: classify changed paths as bump-required, exempt or unclassified
- Changelog: check that a bumped version is documented
- Gate: combine both with the version marker into a requirement status
"""
