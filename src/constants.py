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
    RESOLUTION_ERROR = 4
    INSTALL_ERROR = 5


class PackageManagers(Enum):
    """Package managers the installer can delegate to.

    Args:
        Enum (string): Package manager executables.
    """

    PNPM = "pnpm"
    NPM = "npm"
    YARN = "yarn"


class VersionOrders(Enum):
    """How candidate versions of one package are ordered before picking the last."""

    REGISTRY = "registry"
    SEMVER = "semver"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    ROOT_PACKAGE = "effect"
    FAMILY_PREFIX = "@effect/"
    CANONICAL_REPOSITORY = "effect-ts/effect"
    RAW_MANIFEST_BASE_URL = "https://raw.githubusercontent.com/Effect-TS/effect"
    WORKSPACE_PROTOCOL = "workspace:"
    REGISTRY_URL_NPM = "https://registry.npmjs.org/"
    PACKAGE_MANAGER = PackageManagers.PNPM.value
    SUPPORTED_PACKAGE_MANAGERS = [pm.value for pm in PackageManagers]
    VERSION_ORDER = VersionOrders.REGISTRY.value
    VERSION_ORDERS = [vo.value for vo in VersionOrders]

    PACKAGE_JSON_FILE = "package.json"
    NODE_MODULES_DIR = "node_modules"
    CONFIG_FILE = ".peeralign.yml"
    ENV_LOG_LEVEL = "PEERALIGN_LOG_LEVEL"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    HTTP_CACHE_TTL_SEC = 300
    HTTP_MAX_CONNECTIONS = 16
