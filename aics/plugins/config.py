"""Plugin state persistence - manages plugins.json."""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


class PluginConfigService:
    """Manages the plugins.json file.

    Config format:
    {
        "enabled": ["com.example.fmt"],
        "plugins": {
            "com.example.fmt": {
                "trim_blank_lines": true
            }
        }
    }
    """

    def __init__(self, config_file: Path):
        self.config_file = config_file
        self._lock = threading.Lock()
        self._config: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        """Load config from file, creating defaults if not found."""
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    data.setdefault("enabled", [])
                    data.setdefault("plugins", {})
                    return data
                logger.error(f"Ignoring malformed plugin config {self.config_file}")
            except (json.JSONDecodeError, OSError) as e:
                logger.error(f"Error loading plugin config: {e}")

        return {"enabled": [], "plugins": {}}

    def _save(self) -> None:
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.config_file.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(self._config, f, indent=2, ensure_ascii=False)
        tmp.replace(self.config_file)
        logger.debug(f"Saved plugin config to {self.config_file}")

    def is_enabled(self, plugin_id: str) -> bool:
        return plugin_id in self._config.get("enabled", [])

    def get_plugin_config(self, plugin_id: str) -> Dict[str, Any]:
        """Get configuration for a specific plugin."""
        return dict(self._config.get("plugins", {}).get(plugin_id, {}))

    def get_enabled_list(self) -> List[str]:
        """Get list of enabled plugin IDs, in the order they were enabled."""
        return list(self._config.get("enabled", []))

    def enable(self, plugin_id: str) -> None:
        with self._lock:
            enabled = self._config.setdefault("enabled", [])
            if plugin_id in enabled:
                return
            enabled.append(plugin_id)
            self._save()
        logger.info(f"Enabled plugin: {plugin_id}")

    def disable(self, plugin_id: str) -> None:
        with self._lock:
            enabled = self._config.get("enabled", [])
            if plugin_id not in enabled:
                return
            enabled.remove(plugin_id)
            self._save()
        logger.info(f"Disabled plugin: {plugin_id}")

    def update_plugin_config(self, plugin_id: str, config: Dict[str, Any]) -> None:
        """Replace the stored settings of a plugin."""
        with self._lock:
            self._config.setdefault("plugins", {})[plugin_id] = dict(config)
            self._save()
        logger.info(f"Updated config for plugin: {plugin_id}")

    def forget(self, plugin_id: str) -> None:
        """Drop every trace of a plugin (used on uninstall)."""
        with self._lock:
            enabled = self._config.get("enabled", [])
            changed = plugin_id in enabled or plugin_id in self._config.get("plugins", {})
            if plugin_id in enabled:
                enabled.remove(plugin_id)
            self._config.get("plugins", {}).pop(plugin_id, None)
            if changed:
                self._save()

    def reload(self) -> None:
        """Reload config from disk."""
        with self._lock:
            self._config = self._load()
