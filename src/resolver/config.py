"""Administrator configuration: YAML file -> immutable snapshot.

Each load produces a new :class:`DepoConfig`; nothing mutates a snapshot in
place. Command handlers that edit settings write the YAML file and the next
pass picks the change up by loading a fresh snapshot.
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import yaml

from constants import Constants
from repository import PlatformInfo, detect_platform

logger = logging.getLogger(__name__)


def _empty_map() -> Mapping[str, str]:
    return MappingProxyType({})


class ConfigError(Exception):
    """Raised when the configuration file cannot be read or written."""


DEFAULT_CONFIG: Dict[str, Any] = {
    "config-version": Constants.CONFIG_VERSION,
    "auto-download": True,
    "auto-download-soft": False,
    "download-progress": True,
    "repository-priority": list(Constants.DEFAULT_REPOSITORY_PRIORITY),
    "overrides": {},
    "aliases": {},
    "checksums": {},
    "version-constraints": {},
    "categories": {},
    "security": {"block-insecure-downloads": True},
    "http": {
        "connect-timeout": Constants.HTTP_CONNECT_TIMEOUT_MS,
        "read-timeout": Constants.HTTP_READ_TIMEOUT_MS,
    },
    "platform": {"version-string": ""},
}


@dataclass(frozen=True)
class DepoConfig:  # pylint: disable=too-many-instance-attributes
    """Snapshot of every setting a resolution pass reads."""
    plugins_dir: Path
    data_dir: Path
    platform: PlatformInfo
    self_name: str = Constants.SELF_NAME
    auto_download: bool = True
    auto_download_soft: bool = False
    download_progress: bool = True
    repository_priority: Tuple[str, ...] = tuple(Constants.DEFAULT_REPOSITORY_PRIORITY)
    overrides: Mapping[str, str] = field(default_factory=_empty_map)
    aliases: Mapping[str, str] = field(default_factory=_empty_map)
    checksums: Mapping[str, str] = field(default_factory=_empty_map)
    version_constraints: Mapping[str, str] = field(default_factory=_empty_map)
    categories: Mapping[str, str] = field(default_factory=_empty_map)
    block_insecure_downloads: bool = True
    connect_timeout_ms: int = Constants.HTTP_CONNECT_TIMEOUT_MS
    read_timeout_ms: int = Constants.HTTP_READ_TIMEOUT_MS
    path: Optional[Path] = None

    @property
    def http_timeout(self) -> Tuple[float, float]:
        """(connect, read) timeout in seconds for requests."""
        return self.connect_timeout_ms / 1000.0, self.read_timeout_ms / 1000.0

    @property
    def install_log_path(self) -> Path:
        return self.data_dir / Constants.INSTALL_LOG_FILE

    def is_ignored(self, dep_name: str) -> bool:
        """True when an administrator pinned ``dep_name`` to an empty override."""
        return dep_name in self.overrides and not self.overrides[dep_name].strip()


def migrate_config(raw: Dict[str, Any]) -> bool:
    """Upgrade ``raw`` in place to the current config version.

    Only missing sections are filled; existing values are never replaced.
    Returns True when anything changed.
    """
    version = raw.get("config-version", 0)
    if not isinstance(version, int):
        version = 0
    start = version

    def _default(key: str) -> None:
        if key not in raw:
            raw[key] = copy.deepcopy(DEFAULT_CONFIG[key])

    if version < 1:
        for key in ("security", "repository-priority", "overrides", "aliases", "checksums", "http"):
            _default(key)
        version = 1
    if version < 2:
        _default("version-constraints")
        version = 2
    if version < 3:
        _default("categories")
        _default("download-progress")
        version = 3
    if version < 4:
        _default("auto-download-soft")
        version = 4

    if version != start:
        raw["config-version"] = version
        logger.info("Migrated configuration from version %s to %s", start, version)
        return True
    return False


def _section(raw: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = raw.get(key)
    return value if isinstance(value, dict) else {}


def _string_map(value: Any, lower_values: bool = False) -> Mapping[str, str]:
    if not isinstance(value, dict):
        return _empty_map()
    result = {}
    for k, v in value.items():
        text = "" if v is None else str(v).strip()
        result[str(k)] = text.lower() if lower_values else text
    return MappingProxyType(result)


def _bool(raw: Dict[str, Any], key: str, default: bool) -> bool:
    value = raw.get(key, default)
    return value if isinstance(value, bool) else default


def _int(raw: Dict[str, Any], key: str, default: int) -> int:
    value = raw.get(key, default)
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid value for %s: %r, using %s", key, value, default)
        return default


def _priority(value: Any) -> Tuple[str, ...]:
    if isinstance(value, list):
        keys = tuple(str(v).strip().lower() for v in value if str(v).strip())
        if keys:
            return keys
    return tuple(Constants.DEFAULT_REPOSITORY_PRIORITY)


def build_config(
    raw: Dict[str, Any],
    plugins_dir: Path,
    data_dir: Optional[Path] = None,
    path: Optional[Path] = None,
) -> DepoConfig:
    """Turn a raw (already migrated) mapping into a DepoConfig snapshot."""
    security = _section(raw, "security")
    http = _section(raw, "http")
    platform_raw = _section(raw, "platform")
    platform = detect_platform(
        version_string=str(platform_raw.get("version-string") or ""),
        engine=platform_raw.get("engine"),
        loader=platform_raw.get("loader"),
        game_version=platform_raw.get("game-version"),
    )
    plugins_dir = Path(plugins_dir)
    return DepoConfig(
        plugins_dir=plugins_dir,
        data_dir=Path(data_dir) if data_dir else plugins_dir / Constants.DATA_DIR_NAME,
        platform=platform,
        self_name=str(raw.get("self-name") or Constants.SELF_NAME),
        auto_download=_bool(raw, "auto-download", True),
        auto_download_soft=_bool(raw, "auto-download-soft", False),
        download_progress=_bool(raw, "download-progress", True),
        repository_priority=_priority(raw.get("repository-priority")),
        overrides=_string_map(raw.get("overrides")),
        aliases=_string_map(raw.get("aliases")),
        checksums=_string_map(raw.get("checksums"), lower_values=True),
        version_constraints=_string_map(raw.get("version-constraints")),
        categories=_string_map(raw.get("categories")),
        block_insecure_downloads=_bool(security, "block-insecure-downloads", True),
        connect_timeout_ms=_int(http, "connect-timeout", Constants.HTTP_CONNECT_TIMEOUT_MS),
        read_timeout_ms=_int(http, "read-timeout", Constants.HTTP_READ_TIMEOUT_MS),
        path=path,
    )


def default_config_path(plugins_dir: Path) -> Path:
    return Path(plugins_dir) / Constants.DATA_DIR_NAME / Constants.CONFIG_FILE


def read_raw_config(path: Path) -> Dict[str, Any]:
    """Load the YAML mapping at ``path``; a missing or empty file is ``{}``."""
    path = Path(path)
    if not path.is_file():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to load config {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a mapping")
    return data


def write_raw_config(path: Path, raw: Dict[str, Any]) -> None:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as fh:
            yaml.safe_dump(raw, fh, default_flow_style=False, sort_keys=False)
    except OSError as exc:
        raise ConfigError(f"Failed to write config {path}: {exc}") from exc


def load_config(path: Optional[Path] = None, plugins_dir: Optional[Path] = None) -> DepoConfig:
    """Read, migrate and snapshot the configuration.

    Plugins directory precedence: ``plugins_dir`` argument, the file's
    ``plugins-dir`` key, then the parent of the config file's directory
    (``plugins/Depo/config.yml`` -> ``plugins``). A missing file is created
    with defaults.
    """
    if path is None:
        path = default_config_path(plugins_dir or Path("plugins"))
    path = Path(path)

    if not path.is_file():
        write_raw_config(path, copy.deepcopy(DEFAULT_CONFIG))
        logger.info("Wrote default configuration to %s", path)

    raw = read_raw_config(path)
    if migrate_config(raw):
        write_raw_config(path, raw)

    if plugins_dir is None:
        configured = raw.get("plugins-dir")
        plugins_dir = Path(configured) if configured else path.parent.parent
    return build_config(raw, plugins_dir=Path(plugins_dir), data_dir=path.parent, path=path)


def set_config_value(path: Path, keys: Sequence[str], value: Any) -> None:
    """Persist ``value`` under the nested ``keys`` path of the config file."""
    raw = read_raw_config(path)
    cur = raw
    for key in keys[:-1]:
        if not isinstance(cur.get(key), dict):
            cur[key] = {}
        cur = cur[key]
    cur[keys[-1]] = value
    write_raw_config(path, raw)


def remove_config_value(path: Path, keys: Sequence[str]) -> bool:
    """Delete the nested ``keys`` entry; returns False when it was absent."""
    raw = read_raw_config(path)
    cur = raw
    for key in keys[:-1]:
        cur = cur.get(key)
        if not isinstance(cur, dict):
            return False
    if keys[-1] not in cur:
        return False
    del cur[keys[-1]]
    write_raw_config(path, raw)
    return True
