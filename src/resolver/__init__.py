"""Dependency resolution: configuration, downloads and the orchestrator."""

from .config import ConfigError, DepoConfig, load_config
from .download import DownloadPipeline
from .install_log import InstallLog, InstallLogEntry
from .orchestrator import DependencyResolver, ResolutionReport

__all__ = [
    "ConfigError",
    "DependencyResolver",
    "DepoConfig",
    "DownloadPipeline",
    "InstallLog",
    "InstallLogEntry",
    "ResolutionReport",
    "load_config",
]
