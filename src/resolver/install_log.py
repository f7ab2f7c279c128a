"""Append-only record of dependencies Depo has installed."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)

SEPARATOR = " | "


@dataclass(frozen=True)
class InstallLogEntry:
    timestamp: str
    dep_name: str
    source_url: str


class InstallLog:
    """One ``timestamp | dependency | url`` line per successful install."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def append(self, dep_name: str, source_url: str) -> None:
        """Record an install. Write failures are logged, never raised."""
        stamp = datetime.now(timezone.utc).isoformat()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as fh:
                fh.write(f"{stamp}{SEPARATOR}{dep_name}{SEPARATOR}{source_url}\n")
        except OSError as exc:
            logger.warning("Failed to write %s: %s", self.path.name, exc)

    def entries(self) -> List[InstallLogEntry]:
        """Parse the log back into entries; malformed lines are skipped."""
        if not self.path.is_file():
            return []
        rows = []
        with open(self.path, "r", encoding="utf-8") as fh:
            for line in fh:
                parts = line.rstrip("\n").split(SEPARATOR, 2)
                if len(parts) == 3:
                    rows.append(InstallLogEntry(*parts))
        return rows
