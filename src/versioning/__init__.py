"""Version parsing and constraint matching."""

from .constraint import VersionConstraint
from .semver import ParsedVersion, parse_version

__all__ = [
    "ParsedVersion",
    "VersionConstraint",
    "parse_version",
]
