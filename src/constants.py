"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    EXIT_WARNINGS = 3


class RepositoryKeys(Enum):
    """Repository providers supported by the resolver.

    Args:
        Enum (string): Keys accepted in ``repository-priority``.
    """

    MODRINTH = "modrinth"
    SPIGET = "spiget"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    SELF_NAME = "Depo"
    ARCHIVE_EXTENSION = ".jar"
    MANIFEST_ENTRY = "plugin.yml"
    DATA_DIR_NAME = "Depo"
    CONFIG_FILE = "config.yml"
    INSTALL_LOG_FILE = "installed.log"
    TEMP_PREFIX = ".depo_tmp_"
    PARTIAL_SUFFIX = ".part"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    USER_AGENT = "Depo/1.0 (+https://github.com/lokixcz/depo)"

    # Repository API constants
    MODRINTH_API_BASE = "https://api.modrinth.com/v2"
    SPIGET_API_BASE = "https://api.spiget.org/v2"
    SPIGET_SEARCH_SIZE = 25
    GITHUB_API_BASE = "https://api.github.com"
    ENV_GITHUB_TOKEN = "GITHUB_TOKEN"
    DEFAULT_REPOSITORY_PRIORITY = [
        RepositoryKeys.MODRINTH.value,
        RepositoryKeys.SPIGET.value,
    ]

    # HTTP tunables; timeouts in milliseconds mirror the config file units
    HTTP_CONNECT_TIMEOUT_MS = 10000
    HTTP_READ_TIMEOUT_MS = 30000
    HTTP_RETRY_MAX = 2
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    DOWNLOAD_ATTEMPTS = 2
    DOWNLOAD_CHUNK_SIZE = 8192
    PROGRESS_MIN_BYTES = 64 * 1024
    PROGRESS_STEP_PCT = 10

    CONFIG_VERSION = 4
