"""Modrinth provider: picks the newest matching version of a project.

Queries the version listing filtered by loader and game version first and
falls back to the unfiltered listing when the filtered one is empty.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from constants import Constants, RepositoryKeys
from common.http_client import HttpFetchError, fetch_json
from versioning import ParsedVersion, VersionConstraint, parse_version

from .base import PlatformInfo, RepositoryProvider

logger = logging.getLogger(__name__)


def _is_archive_url(url: Any) -> bool:
    return isinstance(url, str) and url.lower().endswith(Constants.ARCHIVE_EXTENSION)


def select_file_url(files: Any) -> Optional[str]:
    """Return the primary archive URL of a version, else its first archive URL."""
    if not isinstance(files, list):
        return None
    descriptors = [f for f in files if isinstance(f, dict) and _is_archive_url(f.get("url"))]
    for descriptor in descriptors:
        if descriptor.get("primary") is True:
            return descriptor["url"]
    return descriptors[0]["url"] if descriptors else None


class ModrinthProvider(RepositoryProvider):
    """Provider backed by the Modrinth v2 version listing API."""

    key = RepositoryKeys.MODRINTH.value

    def __init__(self, base_url: Optional[str] = None, timeout=None):
        super().__init__(timeout)
        self.base_url = base_url or Constants.MODRINTH_API_BASE

    def _listing_urls(self, project: str, platform: PlatformInfo) -> Tuple[str, str]:
        base = f"{self.base_url}/project/{quote(project, safe='')}/version"
        loaders = quote(json.dumps([platform.loader]), safe="")
        versions = quote(json.dumps([platform.game_version]), safe="")
        return f"{base}?loaders={loaders}&game_versions={versions}", base

    def _fetch_versions(self, url: str) -> List[Dict[str, Any]]:
        status, data = fetch_json(url, timeout=self.timeout)
        if status != 200 or not isinstance(data, list):
            return []
        return [v for v in data if isinstance(v, dict)]

    def fetch_versions(self, project: str, platform: PlatformInfo) -> List[Dict[str, Any]]:
        """Return version objects for ``project``, platform-filtered when possible."""
        filtered, unfiltered = self._listing_urls(project, platform)
        try:
            versions = self._fetch_versions(filtered)
        except HttpFetchError as exc:
            logger.debug("Filtered listing of %s failed: %s", project, exc)
            versions = []
        if not versions:
            logger.debug("No %s versions of %s for %s; trying unfiltered listing",
                         platform.loader, project, platform.game_version)
            versions = self._fetch_versions(unfiltered)
        return versions

    @staticmethod
    def pick(
        versions: List[Dict[str, Any]],
        constraint: Optional[VersionConstraint] = None,
    ) -> Optional[str]:
        """Return the artifact URL of the highest version accepted by ``constraint``."""
        candidates: List[Tuple[ParsedVersion, str]] = []
        for obj in versions:
            parsed = parse_version(obj.get("version_number") or "")
            if parsed is None:
                continue
            if constraint is not None and not constraint.matches(parsed):
                continue
            url = select_file_url(obj.get("files"))
            if url is None:
                continue
            candidates.append((parsed, url))
        if not candidates:
            return None
        return max(candidates, key=lambda c: c[0])[1]

    def resolve_download_url(self, project, platform, constraint=None):
        try:
            return self.pick(self.fetch_versions(project, platform), constraint)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.warning("Modrinth lookup for %s failed: %s", project, exc)
            return None
