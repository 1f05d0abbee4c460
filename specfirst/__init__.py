"""specfirst — lifecycle manager for a spec-first configuration package.

Installs, updates and uninstalls a tree of declarative artifacts into a host
application's configuration directory, and gates content changes behind a
semantic-version bump and changelog entry.
"""

__version__ = "0.4.0"
