"""Plugin archive scanner: reads ``plugin.yml`` from every installed jar.

Builds the inverted dependency index (dependency -> requiring plugins) fresh
on every call. Archives that cannot be read are logged and skipped so a
single broken jar never hides the rest of the inventory.
"""
from __future__ import annotations

import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Set

import yaml

from constants import Constants

logger = logging.getLogger(__name__)


class ManifestError(Exception):
    """Raised when an archive or its embedded manifest cannot be parsed."""


@dataclass(frozen=True)
class ManifestDeclaration:
    """Identity and dependency declarations of one installed plugin."""
    name: str
    requires: FrozenSet[str] = field(default_factory=frozenset)
    soft_requires: FrozenSet[str] = field(default_factory=frozenset)
    provides: FrozenSet[str] = field(default_factory=frozenset)

    def declares(self, identity: str) -> bool:
        """Return True when ``identity`` is this plugin's name or one it provides.

        Comparison ignores case.
        """
        wanted = identity.strip().lower()
        if self.name.lower() == wanted:
            return True
        return any(p.strip().lower() == wanted for p in self.provides)


@dataclass
class DependencyMaps:
    """Dependency name -> names of the plugins that declare it."""
    required: Dict[str, Set[str]] = field(default_factory=dict)
    soft: Dict[str, Set[str]] = field(default_factory=dict)


def _string_list(value: Any) -> FrozenSet[str]:
    if not isinstance(value, list):
        return frozenset()
    return frozenset(v for v in value if isinstance(v, str))


def parse_manifest(document: Any) -> Optional[ManifestDeclaration]:
    """Build a declaration from a loaded ``plugin.yml`` mapping.

    Returns None when the document has no ``name``.
    """
    if document is None:
        return None
    if not isinstance(document, dict):
        raise ManifestError(f"{Constants.MANIFEST_ENTRY} is not a mapping")
    raw_name = document.get("name")
    if raw_name is None:
        return None
    name = str(raw_name).strip()
    if not name:
        return None
    return ManifestDeclaration(
        name=name,
        requires=_string_list(document.get("depend")),
        soft_requires=_string_list(document.get("softdepend")),
        provides=_string_list(document.get("provides")),
    )


def read_manifest(archive: Path) -> Optional[ManifestDeclaration]:
    """Read the declaration embedded in ``archive``.

    Returns None when the archive has no manifest entry or no name.

    Raises:
        ManifestError: the archive is not a readable zip or the YAML is invalid.
    """
    try:
        with zipfile.ZipFile(archive) as jar:
            try:
                raw = jar.read(Constants.MANIFEST_ENTRY)
            except KeyError:
                return None
    except (OSError, zipfile.BadZipFile) as exc:
        raise ManifestError(str(exc)) from exc
    try:
        document = yaml.safe_load(raw.decode("utf-8", errors="replace"))
    except yaml.YAMLError as exc:
        raise ManifestError(f"invalid {Constants.MANIFEST_ENTRY}: {exc}") from exc
    return parse_manifest(document)


def list_archives(plugins_dir: Path) -> List[Path]:
    """Return plugin archives directly inside ``plugins_dir``, sorted by name."""
    directory = Path(plugins_dir)
    if not directory.is_dir():
        return []
    ext = Constants.ARCHIVE_EXTENSION
    return sorted(
        (p for p in directory.iterdir() if p.is_file() and p.name.lower().endswith(ext)),
        key=lambda p: p.name,
    )


class ManifestScanner:
    """Scans a plugins directory for installed plugins and their declarations."""

    def __init__(self, plugins_dir: Path, self_name: str = Constants.SELF_NAME):
        self.plugins_dir = Path(plugins_dir)
        self.self_name = self_name

    def installed(self) -> List[ManifestDeclaration]:
        """Return every readable declaration, including the resolver's own."""
        found = []
        for archive in list_archives(self.plugins_dir):
            try:
                decl = read_manifest(archive)
            except ManifestError as exc:
                logger.warning("Failed reading %s: %s", archive.name, exc)
                continue
            if decl is not None:
                found.append(decl)
        return found

    def _is_self(self, decl: ManifestDeclaration) -> bool:
        return decl.name.lower() == self.self_name.lower()

    def scan_dependency_map_detailed(self) -> DependencyMaps:
        """Build required/soft dependency maps from the current inventory."""
        maps = DependencyMaps()
        for decl in self.installed():
            if self._is_self(decl):
                continue
            for dep in decl.requires:
                maps.required.setdefault(dep, set()).add(decl.name)
            for dep in decl.soft_requires:
                maps.soft.setdefault(dep, set()).add(decl.name)
        return maps

    def scan_dependency_map(self) -> Dict[str, Set[str]]:
        """Required and soft dependencies merged into one map."""
        maps = self.scan_dependency_map_detailed()
        merged: Dict[str, Set[str]] = {}
        for source in (maps.required, maps.soft):
            for dep, requirers in source.items():
                merged.setdefault(dep, set()).update(requirers)
        return merged

    def archive_providing(self, identity: str) -> Optional[Path]:
        """Return the first archive declaring ``identity`` by name or provides."""
        for archive in list_archives(self.plugins_dir):
            try:
                decl = read_manifest(archive)
            except ManifestError as exc:
                logger.debug("Skipping %s: %s", archive.name, exc)
                continue
            if decl is not None and decl.declares(identity):
                return archive
        return None


def archive_declares(archive: Path, identity: str) -> bool:
    """Return True when ``archive`` declares ``identity``; unreadable archives do not."""
    try:
        decl = read_manifest(archive)
    except ManifestError as exc:
        logger.debug("Cannot validate %s: %s", archive, exc)
        return False
    return decl is not None and decl.declares(identity)
