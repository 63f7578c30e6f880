"""Global constants for the AICS plugin host."""

from pathlib import Path

from aics import __version__

# Directory paths
AICS_ROOT = Path(__file__).resolve().parent.parent  # repository root
BUNDLED_PLUGINS_DIR = AICS_ROOT / "plugins" / "bundled"
DEFAULT_CATALOG_FILE = AICS_ROOT / "plugins" / "catalog.json"
DEFAULT_HOME_DIR = Path.home() / ".aics"

# Bundle layout
BUNDLE_SUFFIX = ".aicsplugin"  # reserved extension for plugin bundle directories
MANIFEST_FILE = "manifest.json"
SIGNATURE_FILE = "signature.json"
INSTALL_RECORD_FILE = ".install.json"
STAGING_DIR_NAME = ".staging"
DEFAULT_ENTRY_CALLABLE = "register"

# Versions handed to plugins through PluginContext
HOST_API_VERSION = "1.0.0"
APP_VERSION = __version__

# Timeouts (seconds)
DEFAULT_ACTIVATION_TIMEOUT = 10.0
DEFAULT_COMMAND_TIMEOUT = 30.0
DEFAULT_INSTALL_TIMEOUT = 120.0
DEFAULT_TERMINAL_TIMEOUT = 60.0
DEFAULT_NETWORK_TIMEOUT = 30.0

# Host service limits
MAX_OUTPUT_BYTES = 100 * 1024  # 100KB
MAX_NOTIFICATIONS = 200

DEFAULT_AI_MODEL = "claude-sonnet-4-5"
