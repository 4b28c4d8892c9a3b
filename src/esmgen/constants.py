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
    CONVERSION_ERROR = 3
    SERVER_ERROR = 4


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL_NPM = "https://registry.npmjs.org/"
    PACKAGE_JSON_FILE = "package.json"
    MANIFEST_FILE = "esmgen.json"
    CONFIG_FILES = ["esmgen.yml", "esmgen.yaml", ".esmgen.yml"]
    BUNDLE_FILE = "bundle.js"
    DOWNLOAD_DIR_NAME = "esmgen-downloads"
    LATEST_TAG = "latest"

    DEFAULT_DIR = "esm"
    DEFAULT_HOST = "127.0.0.1"
    DEFAULT_PORT = 3000
    MAX_PORT = 65535
    HEALTH_PATH = "/_esmgen/health"

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
    ENV_LOG_LEVEL = "ESMGEN_LOG_LEVEL"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    STREAM_CHUNK_SIZE = 64 * 1024

    ESBUILD_EXECUTABLE = "esbuild"
    TYPESCRIPT_EXTENSIONS = (".ts", ".tsx", ".mts", ".cts")

    # Style sheets and common raster/vector image formats. Nothing else is
    # ever copied next to a bundle.
    ASSET_EXTENSIONS = (
        ".css",
        ".png",
        ".jpg",
        ".jpeg",
        ".gif",
        ".svg",
        ".webp",
        ".avif",
        ".bmp",
        ".ico",
    )
