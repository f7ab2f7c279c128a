"""Resolution orchestrator: finds missing dependencies and installs them.

One pass scans the plugins directory, computes which declared dependencies
are not satisfied, and installs each missing one in order: existing archive,
administrator override, then providers by configured priority. Failures are
collected as conflicts for the pass instead of aborting it.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set

from common.logging_utils import extra_context, is_debug_enabled
from manifest import DependencyMaps, ManifestScanner, list_satisfied_names
from repository import GitHubReleaseClient, RepositoryProvider, build_providers
from versioning import VersionConstraint

from .config import DepoConfig
from .download import DownloadPipeline

logger = logging.getLogger(__name__)

RESTART_HINT = "Restart the server to load new plugins."


@dataclass
class ResolutionReport:
    """Outcome of one resolution pass."""
    missing_required: List[str] = field(default_factory=list)
    missing_soft: List[str] = field(default_factory=list)
    installed: Dict[str, Set[str]] = field(default_factory=dict)
    conflicts: Dict[str, str] = field(default_factory=dict)
    auto_download: bool = True


def _joined(names: Iterable[str]) -> str:
    return ", ".join(sorted(names))


class DependencyResolver:
    """Drives scanning, provider lookup and downloads for one plugins directory.

    Passes are sequential. Conflicts and the download queue belong to the
    current pass and are reset when the next one starts.
    """

    def __init__(
        self,
        config: DepoConfig,
        providers: Optional[Mapping[str, RepositoryProvider]] = None,
        pipeline: Optional[DownloadPipeline] = None,
        scanner: Optional[ManifestScanner] = None,
        github: Optional[GitHubReleaseClient] = None,
    ):
        self.config = config
        self.providers = dict(providers) if providers is not None else build_providers(config.http_timeout)
        self.pipeline = pipeline or DownloadPipeline.from_config(config)
        self.scanner = scanner or ManifestScanner(config.plugins_dir, config.self_name)
        self.github = github or GitHubReleaseClient(timeout=config.http_timeout)
        self.conflicts: Dict[str, str] = {}
        self.download_queue: List[str] = []
        self._pass_lock = threading.Lock()
        self._worker: Optional[threading.Thread] = None

    def reload(self, config: DepoConfig) -> None:
        """Adopt a new configuration snapshot for subsequent passes."""
        self.config = config
        self.providers = build_providers(config.http_timeout)
        self.pipeline = DownloadPipeline.from_config(config)
        self.scanner = ManifestScanner(config.plugins_dir, config.self_name)
        self.github = GitHubReleaseClient(timeout=config.http_timeout)

    # -- inventory -------------------------------------------------------

    def list_satisfied_names(self) -> Set[str]:
        """Names satisfied by the plugins currently on disk and the configured aliases."""
        return list_satisfied_names(self.scanner.installed(), self.config.aliases)

    def scan_dependency_map_detailed(self) -> DependencyMaps:
        """Fresh required/soft dependency maps of the plugins directory."""
        return self.scanner.scan_dependency_map_detailed()

    def _missing(self, declared: Iterable[str], satisfied: Set[str]) -> List[str]:
        return sorted(
            d for d in declared if d not in satisfied and not self.config.is_ignored(d)
        )

    # -- installation ----------------------------------------------------

    def install_dependency(self, dep_name: str) -> bool:
        """Install ``dep_name`` unless it is already present.

        Returns True when an archive declaring the dependency is on disk
        afterwards. On failure a conflict with a reason is recorded.
        """
        if self.scanner.archive_providing(dep_name) is not None:
            logger.info("Found existing jar for %s in %s. Skipping download.",
                        dep_name, self.config.plugins_dir)
            self.conflicts.pop(dep_name, None)
            return True

        if dep_name in self.config.overrides:
            url = self.config.overrides[dep_name]
            if not url.strip():
                logger.info("%s is ignored by an empty override.", dep_name)
                return False
            ok = self.pipeline.download_to_target(url, f"{dep_name}.jar", dep_name)
            if ok:
                self.conflicts.pop(dep_name, None)
            else:
                self.conflicts[dep_name] = f"override download failed ({url})"
            return ok

        raw_constraint = self.config.version_constraints.get(dep_name) or None
        constraint = VersionConstraint(raw_constraint) if raw_constraint else None
        if constraint is not None:
            logger.info("Applying version constraint '%s' for %s", raw_constraint, dep_name)

        platform = self.config.platform
        for key in self.config.repository_priority:
            provider = self.providers.get(key)
            if provider is None:
                logger.debug("Unknown repository '%s' in priority list", key)
                continue
            logger.info("Trying %s for %s ...", key, dep_name)
            resolution = provider.resolve(dep_name, platform, constraint)
            if resolution is None:
                continue
            if is_debug_enabled(logger):
                logger.debug(
                    "Provider resolved URL",
                    extra=extra_context(
                        event="provider_resolved",
                        component="orchestrator",
                        provider=key,
                        target=dep_name,
                    ),
                )
            if self.pipeline.download_to_target(resolution.url, resolution.suggested_file_name, dep_name):
                self.conflicts.pop(dep_name, None)
                return True

        if raw_constraint:
            reason = f"no version satisfies constraint '{raw_constraint}'"
            logger.warning("Could not find %s on trusted repositories matching constraint '%s'.",
                           dep_name, raw_constraint)
        else:
            reason = "not found"
            logger.warning("Could not find %s on trusted repositories.", dep_name)
        self.conflicts[dep_name] = reason
        return False

    def scan_and_resolve(self) -> ResolutionReport:
        """Run one full pass and return what happened."""
        self.conflicts.clear()
        satisfied = self.list_satisfied_names()
        dep_info = self.scan_dependency_map_detailed()
        report = ResolutionReport(
            missing_required=self._missing(dep_info.required, satisfied),
            missing_soft=self._missing(dep_info.soft, satisfied),
            auto_download=self.config.auto_download,
        )
        self.download_queue = list(report.missing_required)

        if report.missing_required:
            logger.info("Missing required: %s", ", ".join(report.missing_required))
        else:
            logger.info("No missing required dependencies.")
        if report.missing_soft:
            logger.info("Missing optional (soft): %s | use 'depo soft install' to add them",
                        ", ".join(report.missing_soft))

        if not self.config.auto_download:
            logger.warning("auto-download is disabled. Only logging missing required dependencies.")
            self.download_queue = []
            return report

        try:
            for dep in report.missing_required:
                if self.install_dependency(dep):
                    report.installed[dep] = set(dep_info.required.get(dep, ()))
            if self.config.auto_download_soft:
                for dep in report.missing_soft:
                    if self.install_dependency(dep):
                        report.installed[dep] = set(dep_info.soft.get(dep, ()))
        finally:
            self.download_queue = []

        report.conflicts = dict(self.conflicts)
        self.log_report(report)
        return report

    @staticmethod
    def log_report(report: ResolutionReport) -> None:
        """Emit the bulk installed/conflict summary of a pass."""
        if report.installed:
            parts = ", ".join(
                f"{dep} (by {_joined(by)})" if by else dep
                for dep, by in report.installed.items()
            )
            logger.info("Installed: %s. %s", parts, RESTART_HINT)
        if report.conflicts:
            logger.warning("Unresolved dependencies:")
            for dep, reason in sorted(report.conflicts.items()):
                logger.warning("  %s: %s", dep, reason)
            logger.warning("Use 'depo resolve <dep> ignore|relax|override <url>' to settle them.")

    def start_background_pass(
        self, on_complete: Optional[Callable[[ResolutionReport], None]] = None
    ) -> Optional[threading.Thread]:
        """Run :meth:`scan_and_resolve` on a single worker thread.

        Returns the started thread, or None when a pass is already running.
        """
        if not self._pass_lock.acquire(blocking=False):
            logger.warning("A resolution pass is already running; not starting another.")
            return None

        def _run() -> None:
            try:
                report = self.scan_and_resolve()
                if on_complete is not None:
                    on_complete(report)
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception("Resolution pass failed")
            finally:
                self._pass_lock.release()

        self._worker = threading.Thread(target=_run, name="depo-resolver", daemon=True)
        self._worker.start()
        return self._worker

    # -- soft dependencies -----------------------------------------------

    def soft_missing(self) -> List[str]:
        """Missing soft dependencies in the order used for numbered selection."""
        satisfied = self.list_satisfied_names()
        return self._missing(self.scan_dependency_map_detailed().soft, satisfied)

    def select_soft_targets(self, tokens: Iterable[str]) -> List[str]:
        """Expand names, 1-based indices, comma lists or ``all`` into dependency names."""
        ordered = self.soft_missing()
        parts = [p.strip() for t in tokens for p in t.split(",") if p.strip()]
        if any(p.lower() == "all" for p in parts):
            return list(ordered)
        selected: List[str] = []
        for part in parts:
            if part.isdigit() and 1 <= int(part) <= len(ordered):
                name = ordered[int(part) - 1]
            elif part in ordered:
                name = part
            else:
                logger.warning("'%s' is not a missing soft dependency", part)
                continue
            if name not in selected:
                selected.append(name)
        return selected

    def install_soft(self, tokens: Iterable[str]) -> Dict[str, bool]:
        """Install the selected soft dependencies; returns name -> success."""
        return {dep: self.install_dependency(dep) for dep in self.select_soft_targets(tokens)}

    # -- manual downloads ------------------------------------------------

    def _provides_installed(self, name: str) -> bool:
        return self.scanner.archive_providing(name) is not None

    def download_direct(self, url: str) -> Optional[str]:
        """Download any plugin archive from ``url``; returns its plugin name."""
        return self.pipeline.download_arbitrary(url, exists=self._provides_installed)

    def download_github(self, owner_repo: str, asset_filter: Optional[str] = None) -> Optional[str]:
        """Download the first matching archive of a GitHub repo's latest release."""
        asset = self.github.latest_jar_asset(owner_repo, asset_filter)
        if asset is None:
            return None
        name, url = asset
        return self.pipeline.download_arbitrary(url, name, exists=self._provides_installed)

    # -- reports ---------------------------------------------------------

    def status(self) -> List[str]:
        """Human-readable status report lines."""
        satisfied = self.list_satisfied_names()
        info = self.scan_dependency_map_detailed()
        platform = self.config.platform
        missing_req = self._missing(info.required, satisfied)
        missing_soft = self._missing(info.soft, satisfied)

        lines = ["Depo status"]
        lines.append(f"Platform: {platform.engine} {platform.game_version} (loader={platform.loader})")
        lines.append(f"Installed: {_joined(satisfied)}")
        lines.append(f"Declared: {_joined(set(info.required) | set(info.soft))}")

        if self.config.categories:
            by_category: Dict[str, List[str]] = {}
            for dep, category in self.config.categories.items():
                by_category.setdefault(category, []).append(dep)
            lines.append("Categories:")
            for category in sorted(by_category, key=str.lower):
                present = sorted(d for d in by_category[category] if d in satisfied)
                if present:
                    lines.append(f"  {category}: {', '.join(present)}")

        if self.conflicts:
            lines.append("Conflicts:")
            lines.extend(f"  {dep}: {reason}" for dep, reason in sorted(self.conflicts.items()))

        if missing_req:
            lines.append("Missing required:")
            lines.extend(f"  {dep} (required by {_joined(info.required[dep])})" for dep in missing_req)
        else:
            lines.append("No missing required dependencies.")

        if missing_soft:
            lines.append("Missing optional (soft):")
            lines.extend(f"  {dep} (wanted by {_joined(info.soft[dep])})" for dep in missing_soft)

        if self.download_queue:
            lines.append("Download queue:")
            for dep in self.download_queue:
                by = info.required.get(dep) or info.soft.get(dep) or {"unknown"}
                lines.append(f"  {dep} (by {_joined(by)})")
        return lines

    def tree(self) -> List[str]:
        """Plugin -> declared dependency tree with presence markers."""
        declared = self.scanner.scan_dependency_map()
        if not declared:
            return ["No plugins declare dependencies."]
        satisfied = self.list_satisfied_names()
        by_plugin: Dict[str, Set[str]] = {}
        for dep, requirers in declared.items():
            for plugin in requirers:
                by_plugin.setdefault(plugin, set()).add(dep)

        lines = ["Dependency tree"]
        for plugin in sorted(by_plugin):
            lines.append(plugin)
            for dep in sorted(by_plugin[plugin]):
                constraint = self.config.version_constraints.get(dep)
                label = f"{dep}@{constraint}" if constraint else dep
                marker = "+" if dep in satisfied else "-"
                suffix = "" if dep in satisfied else " (missing)"
                lines.append(f"  {marker} {label}{suffix}")
        return lines
