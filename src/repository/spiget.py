"""Spiget provider: keyword search over SpigotMC resources.

Spiget's search results carry no usable version data, so version
constraints are not applied here.
"""
from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

from constants import Constants, RepositoryKeys
from common.http_client import fetch_json

from .base import RepositoryProvider

logger = logging.getLogger(__name__)


def choose_resource_id(project: str, results: Any) -> Optional[int]:
    """Return the id of the exact (case-insensitive) name match, else the first result."""
    if not isinstance(results, list):
        return None
    chosen = None
    for result in results:
        if not isinstance(result, dict):
            continue
        name, rid = result.get("name"), result.get("id")
        if not isinstance(name, str) or not isinstance(rid, int) or isinstance(rid, bool):
            continue
        if name.lower() == project.lower():
            return rid
        if chosen is None:
            chosen = rid
    return chosen


class SpigetProvider(RepositoryProvider):
    """Provider backed by the Spiget search API."""

    key = RepositoryKeys.SPIGET.value

    def __init__(self, base_url: Optional[str] = None, timeout=None):
        super().__init__(timeout)
        self.base_url = base_url or Constants.SPIGET_API_BASE

    def download_url(self, resource_id: int) -> str:
        """Fixed-shape download URL for a resource id."""
        return f"{self.base_url}/resources/{resource_id}/download"

    def resolve_download_url(self, project, platform, constraint=None):
        if constraint is not None:
            logger.debug("Spiget ignores version constraint '%s' for %s", constraint.raw, project)
        url = (
            f"{self.base_url}/search/resources/{quote(project, safe='')}"
            f"?size={Constants.SPIGET_SEARCH_SIZE}&fields=id,name"
        )
        try:
            status, data = fetch_json(url, timeout=self.timeout)
            if status != 200:
                return None
            resource_id = choose_resource_id(project, data)
            return self.download_url(resource_id) if resource_id is not None else None
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.warning("Spiget lookup for %s failed: %s", project, exc)
            return None
