"""Download and validation pipeline for plugin archives.

Only the HTTP fetch is retried. A downloaded archive that declares the
wrong identity or fails its checksum is deleted and the attempt fails
without fetching the same URL again.
"""
from __future__ import annotations

import hashlib
import logging
import os
import time
from pathlib import Path
from typing import Callable, Mapping, Optional

import requests

from constants import Constants
from common.http_client import Timeout, stream_get
from common.logging_utils import safe_url
from manifest import archive_declares, read_manifest, ManifestError

from .install_log import InstallLog

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int], None]


def sha256_hex(path: Path) -> str:
    """Hex SHA-256 digest of the file at ``path``."""
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for block in iter(lambda: fh.read(Constants.DOWNLOAD_CHUNK_SIZE), b""):
            digest.update(block)
    return digest.hexdigest()


def log_progress(label: str, percent: int) -> None:
    """Default progress callback: one INFO line per reported step."""
    logger.info("Downloading %s: %d%%", label, percent)


def file_name_from_url(url: str) -> str:
    """Last path segment of ``url`` without its query, or a generic name."""
    name = url.rsplit("/", 1)[-1].split("?", 1)[0]
    return name or f"download{Constants.ARCHIVE_EXTENSION}"


def _remove(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not delete %s: %s", path.name, exc)


class DownloadPipeline:  # pylint: disable=too-many-instance-attributes
    """Fetches archives into the plugins directory and validates them."""

    def __init__(
        self,
        plugins_dir: Path,
        install_log: InstallLog,
        checksums: Optional[Mapping[str, str]] = None,
        block_insecure: bool = True,
        show_progress: bool = True,
        timeout: Optional[Timeout] = None,
        retry_delay: float = Constants.HTTP_RETRY_BASE_DELAY_SEC,
        progress: ProgressCallback = log_progress,
    ):
        self.plugins_dir = Path(plugins_dir)
        self.install_log = install_log
        self.checksums = checksums or {}
        self.block_insecure = block_insecure
        self.show_progress = show_progress
        self.timeout = timeout
        self.retry_delay = retry_delay
        self.progress = progress

    @classmethod
    def from_config(cls, config) -> "DownloadPipeline":
        """Build a pipeline from a DepoConfig snapshot."""
        return cls(
            plugins_dir=config.plugins_dir,
            install_log=InstallLog(config.install_log_path),
            checksums=config.checksums,
            block_insecure=config.block_insecure_downloads,
            show_progress=config.download_progress,
            timeout=config.http_timeout,
        )

    def is_blocked(self, url: str) -> bool:
        """True when policy forbids fetching ``url`` (plaintext HTTP)."""
        return self.block_insecure and url.strip().lower().startswith("http://")

    def fetch(self, url: str, target: Path, label: str) -> bool:
        """Stream one GET of ``url`` into ``target``.

        Returns False on non-2xx status or an empty body (the partial file is
        removed). Transport errors propagate as requests exceptions.
        """
        written = 0
        with stream_get(url, timeout=self.timeout) as response:
            if not 200 <= response.status_code < 300:
                logger.warning("HTTP %s for %s", response.status_code, safe_url(url))
                return False
            try:
                total = int(response.headers.get("Content-Length") or 0)
            except ValueError:
                total = 0
            report = self.show_progress and total > Constants.PROGRESS_MIN_BYTES
            last_pct = -1
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "wb") as out:
                for chunk in response.iter_content(chunk_size=Constants.DOWNLOAD_CHUNK_SIZE):
                    if not chunk:
                        continue
                    out.write(chunk)
                    written += len(chunk)
                    if report:
                        pct = min(100, written * 100 // total)
                        if pct % Constants.PROGRESS_STEP_PCT == 0 and pct != last_pct:
                            last_pct = pct
                            self.progress(label, pct)
        if written == 0:
            logger.warning("Empty response body from %s", safe_url(url))
            _remove(target)
            return False
        return True

    def fetch_with_retry(self, url: str, target: Path, label: str, attempts: int) -> bool:
        """Run :meth:`fetch` up to ``attempts`` times with a fixed delay in between."""
        for attempt in range(1, attempts + 1):
            try:
                if self.fetch(url, target, label):
                    return True
            except (requests.RequestException, OSError) as exc:
                logger.warning("Download error for %s: %s", safe_url(url), exc)
                _remove(target)
            if attempt < attempts:
                logger.warning("Retrying download: %s (attempt %d/%d)", label, attempt + 1, attempts)
                time.sleep(self.retry_delay)
        return False

    def _checksum_ok(self, path: Path, identity: str, label: str) -> bool:
        expected = self.checksums.get(identity)
        if not expected:
            return True
        actual = sha256_hex(path)
        if actual.lower() != expected.strip().lower():
            logger.warning("Checksum mismatch for %s (expected %s, got %s). Deleting file.",
                           label, expected, actual)
            return False
        return True

    def download_to_target(
        self,
        url: str,
        file_name: str,
        expected_identity: str,
        attempts: int = Constants.DOWNLOAD_ATTEMPTS,
    ) -> bool:
        """Download ``url`` as ``file_name`` and keep it only if it is ``expected_identity``.

        Steps: insecure-URL policy, retried fetch into ``<file>.part``,
        manifest identity check, optional SHA-256 check, move into place,
        install-log entry.
        """
        if self.is_blocked(url):
            logger.warning("Blocked insecure download: %s", safe_url(url))
            return False

        target = self.plugins_dir / file_name
        partial = target.with_name(target.name + Constants.PARTIAL_SUFFIX)
        if not self.fetch_with_retry(url, partial, file_name, attempts):
            logger.warning("Failed to download %s from %s", file_name, safe_url(url))
            return False

        if not archive_declares(partial, expected_identity):
            logger.warning("Downloaded file does not contain %s for %s. Deleting %s.",
                           Constants.MANIFEST_ENTRY, expected_identity, file_name)
            _remove(partial)
            return False
        if not self._checksum_ok(partial, expected_identity, file_name):
            _remove(partial)
            return False

        try:
            os.replace(partial, target)
        except OSError as exc:
            logger.error("Could not move %s into place: %s", file_name, exc)
            _remove(partial)
            return False
        logger.info("Downloaded %s to %s.", file_name, self.plugins_dir)
        self.install_log.append(expected_identity, url)
        return True

    def download_arbitrary(
        self,
        url: str,
        suggested_name: Optional[str] = None,
        exists: Optional[Callable[[str], bool]] = None,
    ) -> Optional[str]:
        """Download any plugin archive and install it under its declared name.

        ``exists`` tells whether a plugin providing a name is already present.
        Returns the plugin name (also when it was already installed) or None.
        """
        if self.is_blocked(url):
            logger.warning("Blocked insecure download: %s", safe_url(url))
            return None
        file_name = (suggested_name or "").strip() or file_name_from_url(url)
        # the partial suffix keeps the temp file out of list_archives
        tmp = self.plugins_dir / (
            f"{Constants.TEMP_PREFIX}{int(time.time() * 1000)}"
            f"{Constants.ARCHIVE_EXTENSION}{Constants.PARTIAL_SUFFIX}"
        )
        if not self.fetch_with_retry(url, tmp, file_name, Constants.DOWNLOAD_ATTEMPTS):
            logger.warning("Failed to download from %s", safe_url(url))
            return None

        try:
            decl = read_manifest(tmp)
        except ManifestError as exc:
            logger.warning("Downloaded file is not a valid plugin (%s): %s", file_name, exc)
            decl = None
        if decl is None:
            logger.warning("Downloaded file has no valid %s: %s", Constants.MANIFEST_ENTRY, file_name)
            _remove(tmp)
            return None
        plugin_name = decl.name

        if not self._checksum_ok(tmp, plugin_name, file_name):
            _remove(tmp)
            return None
        if exists is not None and exists(plugin_name):
            logger.warning("A plugin providing '%s' already exists. Skipping.", plugin_name)
            _remove(tmp)
            return plugin_name

        target = self.plugins_dir / file_name
        if target.exists():
            target = self.plugins_dir / f"{plugin_name}-{int(time.time() * 1000)}{Constants.ARCHIVE_EXTENSION}"
        try:
            os.replace(tmp, target)
        except OSError as exc:
            logger.error("Could not move %s into place: %s", target.name, exc)
            _remove(tmp)
            return None
        logger.info("Downloaded %s to %s.", target.name, self.plugins_dir)
        self.install_log.append(plugin_name, url)
        return plugin_name
