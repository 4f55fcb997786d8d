"""Release channel updater.

Points a named release channel (stable, nightly, ...) in a signed
update-metadata repository at a new version, and writes a changelog of
the pull requests merged since the version the channel pointed at
before.
"""

__version__ = "0.1.0"
