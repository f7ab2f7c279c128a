"""Plugin repositories and the provider registry."""

from typing import Dict, Optional

from common.http_client import Timeout

from .base import PlatformInfo, ProviderResolution, RepositoryProvider, detect_platform
from .github import GitHubReleaseClient
from .modrinth import ModrinthProvider
from .spiget import SpigetProvider


def build_providers(timeout: Optional[Timeout] = None) -> Dict[str, RepositoryProvider]:
    """Return every known provider keyed by its ``repository-priority`` name."""
    providers = (ModrinthProvider(timeout=timeout), SpigetProvider(timeout=timeout))
    return {p.key: p for p in providers}


__all__ = [
    "GitHubReleaseClient",
    "ModrinthProvider",
    "PlatformInfo",
    "ProviderResolution",
    "RepositoryProvider",
    "SpigetProvider",
    "build_providers",
    "detect_platform",
]
