"""GitHub releases client used by manual ``download github`` requests.

Supports optional authentication via the GITHUB_TOKEN environment variable.
"""
from __future__ import annotations

import logging
import os
from typing import Dict, Optional, Tuple

from constants import Constants
from common.http_client import get_json

logger = logging.getLogger(__name__)


class GitHubReleaseClient:
    """Looks up plugin archives attached to a repository's latest release."""

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None, timeout=None):
        """Initialize GitHub client.

        Args:
            base_url: Base URL for the GitHub API (defaults to Constants.GITHUB_API_BASE)
            token: Personal access token (defaults to GITHUB_TOKEN env var)
            timeout: (connect, read) timeout in seconds
        """
        self.base_url = base_url or Constants.GITHUB_API_BASE
        self.token = token or os.environ.get(Constants.ENV_GITHUB_TOKEN)
        self.timeout = timeout

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def latest_jar_asset(
        self, owner_repo: str, asset_filter: Optional[str] = None
    ) -> Optional[Tuple[str, str]]:
        """Return ``(asset_name, download_url)`` of the first matching archive asset.

        Args:
            owner_repo: ``owner/repo`` string
            asset_filter: Optional case-insensitive substring the asset name must contain

        Returns:
            Asset name and URL, or None when the release or a matching asset is missing

        Raises:
            ValueError: ``owner_repo`` is not of the form ``owner/repo``
        """
        parts = owner_repo.strip().split("/")
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"Invalid repository '{owner_repo}', expected owner/repo")
        owner, repo = parts
        url = f"{self.base_url}/repos/{owner}/{repo}/releases/latest"
        status, _, data = get_json(url, headers=self._get_headers(), timeout=self.timeout)
        if status != 200 or not isinstance(data, dict):
            logger.warning("No release info found for %s", owner_repo)
            return None

        needle = asset_filter.lower() if asset_filter else None
        for asset in data.get("assets") or []:
            if not isinstance(asset, dict):
                continue
            name, download = asset.get("name"), asset.get("browser_download_url")
            if not isinstance(name, str) or not isinstance(download, str):
                continue
            if not name.lower().endswith(Constants.ARCHIVE_EXTENSION):
                continue
            if needle and needle not in name.lower():
                continue
            return name, download
        logger.warning("No %s asset found in latest release of %s", Constants.ARCHIVE_EXTENSION, owner_repo)
        return None
