"""Plugin discovery - scans directories to find plugin bundles."""

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from aics.constants import BUNDLE_SUFFIX, MANIFEST_FILE
from aics.plugins.errors import ParseError
from aics.plugins.registry import Plugin

logger = logging.getLogger(__name__)


class PluginDiscovery:
    """Discovers plugins by scanning directories for ``*.aicsplugin`` bundles."""

    def __init__(self, search_paths: Sequence[Tuple[Path, str]]):
        """Initialize discovery with search paths.

        Args:
            search_paths: List of (path, source_label) tuples, searched in order.
        """
        self.search_paths = list(search_paths)

    def discover_all(self) -> List[Plugin]:
        """Discover all plugins from configured search paths.

        Bundles whose manifest fails to parse are logged and skipped.

        Returns:
            List of Plugin records, first-found wins on duplicate ids
        """
        discovered = []
        seen_ids = set()

        for search_path, source in self.search_paths:
            if not search_path.is_dir():
                logger.debug(f"Plugin search path does not exist: {search_path}")
                continue

            for plugin in self._scan_directory(search_path, source):
                if plugin.id in seen_ids:
                    logger.warning(
                        f"Duplicate plugin ID '{plugin.id}' found at {plugin.bundle_path}, "
                        f"skipping (first-found wins)"
                    )
                    continue
                seen_ids.add(plugin.id)
                discovered.append(plugin)

        logger.info(f"Discovered {len(discovered)} plugin(s)")
        return discovered

    def _scan_directory(self, search_path: Path, source: str) -> List[Plugin]:
        plugins = []
        for item in sorted(search_path.iterdir()):
            if not item.is_dir() or not item.name.endswith(BUNDLE_SUFFIX):
                continue
            if not (item / MANIFEST_FILE).exists():
                logger.debug(f"Skipping {item}: no {MANIFEST_FILE}")
                continue
            plugin = self._load_bundle(item, source)
            if plugin:
                plugins.append(plugin)
        return plugins

    def _load_bundle(self, bundle_path: Path, source: str) -> Optional[Plugin]:
        try:
            plugin = Plugin.from_bundle(bundle_path, source)
            logger.debug(f"Discovered plugin: {plugin.id} at {bundle_path}")
            return plugin
        except ParseError as e:
            logger.error(f"Invalid plugin bundle {bundle_path}: {e}")
        except OSError as e:
            logger.error(f"Error reading {bundle_path}: {e}")
        return None
