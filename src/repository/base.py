"""Provider interface shared by the plugin repositories."""
from __future__ import annotations

import abc
import re
from dataclasses import dataclass
from typing import Optional

from constants import Constants
from common.http_client import Timeout, default_timeout
from versioning import VersionConstraint

_MC_VERSION_RE = re.compile(r"\(MC: ([^)]+)\)")


@dataclass(frozen=True)
class PlatformInfo:
    """Server engine, plugin loader and game version used to filter artifacts."""
    engine: str
    loader: str
    game_version: str


@dataclass(frozen=True)
class ProviderResolution:
    """A download URL chosen by a provider plus the file name to save it as."""
    url: str
    suggested_file_name: str


def detect_platform(
    version_string: str = "",
    engine: Optional[str] = None,
    loader: Optional[str] = None,
    game_version: Optional[str] = None,
) -> PlatformInfo:
    """Derive a PlatformInfo from a server version banner and explicit overrides.

    ``version_string`` is what the server reports, e.g.
    ``git-Paper-196 (MC: 1.20.1)``. Explicit arguments win over detection.
    """
    text = (version_string or "").lower()
    if not engine:
        if "purpur" in text:
            engine = "purpur"
        elif "paper" in text:
            engine = "paper"
        elif "spigot" in text:
            engine = "spigot"
        else:
            engine = "bukkit"
    engine = engine.lower()
    if not loader:
        loader = "paper" if engine in ("purpur", "paper") else "spigot"
    if not game_version:
        m = _MC_VERSION_RE.search(version_string or "")
        game_version = m.group(1).strip() if m else "unknown"
    return PlatformInfo(engine=engine, loader=loader, game_version=game_version)


class RepositoryProvider(abc.ABC):
    """Translates a dependency name into a download URL on one repository."""

    key: str = ""

    def __init__(self, timeout: Optional[Timeout] = None):
        self.timeout = timeout or default_timeout()

    @abc.abstractmethod
    def resolve_download_url(
        self,
        project: str,
        platform: PlatformInfo,
        constraint: Optional[VersionConstraint] = None,
    ) -> Optional[str]:
        """Return a download URL for ``project`` or None when nothing fits.

        Implementations must not raise for network or payload problems.
        """

    def suggest_file_name(self, project: str, url: str) -> str:  # pylint: disable=unused-argument
        """File name the downloaded artifact is stored under."""
        return f"{project}{Constants.ARCHIVE_EXTENSION}"

    def resolve(
        self,
        project: str,
        platform: PlatformInfo,
        constraint: Optional[VersionConstraint] = None,
    ) -> Optional[ProviderResolution]:
        """Resolve a URL and pair it with the suggested file name."""
        url = self.resolve_download_url(project, platform, constraint)
        if url is None:
            return None
        return ProviderResolution(url=url, suggested_file_name=self.suggest_file_name(project, url))
