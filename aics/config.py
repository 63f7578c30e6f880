"""Host settings, read from environment variables (.env supported via python-dotenv)."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from aics.constants import (
    APP_VERSION,
    BUNDLED_PLUGINS_DIR,
    DEFAULT_ACTIVATION_TIMEOUT,
    DEFAULT_AI_MODEL,
    DEFAULT_CATALOG_FILE,
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_HOME_DIR,
    DEFAULT_INSTALL_TIMEOUT,
    DEFAULT_TERMINAL_TIMEOUT,
)
from aics.plugins.registry import (
    SOURCE_BUNDLED,
    SOURCE_EXTERNAL,
    SOURCE_INSTALLED,
    PluginContext,
    RuntimeEnvironment,
)

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={value!r}, using {default}")
        return default


@dataclass
class HostSettings:
    """Everything the plugin host needs to know about its environment."""

    home_dir: Path = DEFAULT_HOME_DIR
    plugins_dir: Path = DEFAULT_HOME_DIR / "plugins"
    bundled_dir: Path = BUNDLED_PLUGINS_DIR
    extra_plugin_paths: List[Path] = field(default_factory=list)
    config_file: Path = DEFAULT_HOME_DIR / "plugins.json"
    catalog: str = str(DEFAULT_CATALOG_FILE)
    workspace: Path = field(default_factory=Path.cwd)
    environment: RuntimeEnvironment = RuntimeEnvironment.DEVELOPMENT
    app_version: str = APP_VERSION
    signing_key: Optional[str] = None
    require_signatures: bool = False
    activation_timeout: float = DEFAULT_ACTIVATION_TIMEOUT
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT
    install_timeout: float = DEFAULT_INSTALL_TIMEOUT
    terminal_timeout: float = DEFAULT_TERMINAL_TIMEOUT
    ai_model: str = DEFAULT_AI_MODEL

    @classmethod
    def from_env(cls) -> "HostSettings":
        home = Path(os.getenv("AICS_HOME", str(DEFAULT_HOME_DIR))).expanduser()

        env_name = os.getenv("AICS_ENV", RuntimeEnvironment.DEVELOPMENT.value).strip().lower()
        try:
            environment = RuntimeEnvironment(env_name)
        except ValueError:
            logger.warning(f"Unknown AICS_ENV={env_name!r}, using development")
            environment = RuntimeEnvironment.DEVELOPMENT

        extra = [
            Path(p).expanduser()
            for p in os.getenv("PLUGIN_PATHS", "").split(os.pathsep)
            if p.strip()
        ]

        return cls(
            home_dir=home,
            plugins_dir=Path(os.getenv("AICS_PLUGINS_DIR", str(home / "plugins"))).expanduser(),
            bundled_dir=Path(os.getenv("AICS_BUNDLED_PLUGINS_DIR", str(BUNDLED_PLUGINS_DIR))).expanduser(),
            extra_plugin_paths=extra,
            config_file=Path(os.getenv("AICS_PLUGIN_CONFIG", str(home / "plugins.json"))).expanduser(),
            catalog=os.getenv("AICS_CATALOG", str(DEFAULT_CATALOG_FILE)),
            workspace=Path(os.getenv("AICS_WORKSPACE", str(Path.cwd()))).expanduser(),
            environment=environment,
            app_version=os.getenv("AICS_APP_VERSION", APP_VERSION),
            signing_key=os.getenv("AICS_PLUGIN_SIGNING_KEY") or None,
            require_signatures=_env_bool(
                "AICS_REQUIRE_SIGNATURES", environment == RuntimeEnvironment.PRODUCTION
            ),
            activation_timeout=_env_float("AICS_ACTIVATION_TIMEOUT", DEFAULT_ACTIVATION_TIMEOUT),
            command_timeout=_env_float("AICS_COMMAND_TIMEOUT", DEFAULT_COMMAND_TIMEOUT),
            install_timeout=_env_float("AICS_INSTALL_TIMEOUT", DEFAULT_INSTALL_TIMEOUT),
            terminal_timeout=_env_float("AICS_TERMINAL_TIMEOUT", DEFAULT_TERMINAL_TIMEOUT),
            ai_model=os.getenv("AICS_AI_MODEL", DEFAULT_AI_MODEL),
        )

    def search_paths(self) -> List[Tuple[Path, str]]:
        """Bundle directories in discovery order: managed, bundled, then PLUGIN_PATHS."""
        paths = [(self.plugins_dir, SOURCE_INSTALLED), (self.bundled_dir, SOURCE_BUNDLED)]
        paths.extend((p, SOURCE_EXTERNAL) for p in self.extra_plugin_paths)
        return paths

    def plugin_context(self) -> PluginContext:
        return PluginContext(app_version=self.app_version, environment=self.environment)
