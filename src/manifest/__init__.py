"""Installed plugin inventory: manifest scanning and satisfied names."""

from .satisfied import list_satisfied_names
from .scanner import (
    DependencyMaps,
    ManifestDeclaration,
    ManifestError,
    ManifestScanner,
    archive_declares,
    list_archives,
    read_manifest,
)

__all__ = [
    "DependencyMaps",
    "ManifestDeclaration",
    "ManifestError",
    "ManifestScanner",
    "archive_declares",
    "list_archives",
    "list_satisfied_names",
    "read_manifest",
]
