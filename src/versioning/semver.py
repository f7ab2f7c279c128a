"""Loose semantic version parsing for plugin release numbers."""

import functools
import re
from dataclasses import dataclass
from typing import Optional, Tuple

_VERSION_RE = re.compile(r"^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:-([0-9A-Za-z.-]+))?$")


@functools.total_ordering
@dataclass(frozen=True)
class ParsedVersion:
    """Comparable major.minor.patch version with an optional pre-release tag.

    A release sorts after any pre-release of the same numbers; two
    pre-release tags compare as plain strings.
    """
    major: int
    minor: int = 0
    patch: int = 0
    prerelease: Optional[str] = None

    def _key(self) -> Tuple[int, int, int, int, str]:
        return (
            self.major,
            self.minor,
            self.patch,
            1 if self.prerelease is None else 0,
            self.prerelease or "",
        )

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, ParsedVersion):
            return NotImplemented
        return self._key() < other._key()

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        return f"{base}-{self.prerelease}" if self.prerelease else base


def parse_version(text: str) -> Optional[ParsedVersion]:
    """Parse ``text`` into a ParsedVersion, or None when it is not version-shaped.

    Accepts an optional leading ``v``, one to three numeric groups (missing
    groups default to 0) and an optional ``-`` pre-release suffix.
    """
    if text is None:
        return None
    m = _VERSION_RE.match(str(text).strip())
    if not m:
        return None
    major, minor, patch, pre = m.groups()
    return ParsedVersion(
        major=int(major),
        minor=int(minor or 0),
        patch=int(patch or 0),
        prerelease=pre or None,
    )
