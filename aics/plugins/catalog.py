"""Plugin catalog - listing and search of plugins available for installation."""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import aiohttp
from pydantic import BaseModel, Field, ValidationError

from aics.constants import DEFAULT_NETWORK_TIMEOUT
from aics.plugins.bundle import is_url
from aics.plugins.manifest import PluginCapability, PluginManifest

logger = logging.getLogger(__name__)


class PluginCategory(str, Enum):
    ALL = "all"
    LANGUAGES = "languages"
    THEMES = "themes"
    TOOLS = "tools"
    AI = "ai"
    UI = "ui"

    @property
    def capability(self) -> Optional[PluginCapability]:
        """Capability a plugin must declare to fall in this category (None for ALL)."""
        return _CATEGORY_CAPABILITIES.get(self)


_CATEGORY_CAPABILITIES = {
    PluginCategory.LANGUAGES: PluginCapability.LANGUAGE_SUPPORT,
    PluginCategory.THEMES: PluginCapability.THEME,
    PluginCategory.TOOLS: PluginCapability.COMMANDS,
    PluginCategory.AI: PluginCapability.AI,
    PluginCategory.UI: PluginCapability.UI,
}


class CatalogEntry(BaseModel):
    """One installable plugin: its manifest and where to fetch the bundle."""

    manifest: PluginManifest
    source: str = Field(..., description="Bundle directory, zip path or URL")

    @property
    def id(self) -> str:
        return self.manifest.id

    def matches(self, query: str = "", category: PluginCategory = PluginCategory.ALL) -> bool:
        capability = category.capability
        if capability is not None and capability not in self.manifest.capabilities:
            return False
        if not query:
            return True
        needle = query.lower()
        return needle in self.manifest.name.lower() or needle in self.manifest.description.lower()

    def to_dict(self, installed: bool = False) -> Dict[str, Any]:
        return {
            "id": self.manifest.id,
            "name": self.manifest.name,
            "version": self.manifest.version,
            "author": self.manifest.author,
            "description": self.manifest.description,
            "capabilities": sorted(c.value for c in self.manifest.capabilities),
            "permissions": sorted(p.value for p in self.manifest.permissions),
            "source": self.source,
            "installed": installed,
        }


class PluginCatalog:
    """Available plugins, loaded from a JSON file or URL.

    Format: {"plugins": [{"manifest": {...}, "source": "..."}]}. Relative
    sources are resolved against the catalog file's directory.
    """

    def __init__(self, entries: Iterable[CatalogEntry] = ()):
        self._entries: Dict[str, CatalogEntry] = {}
        for entry in entries:
            if entry.id in self._entries:
                logger.warning(f"Duplicate catalog entry '{entry.id}', keeping the first")
                continue
            self._entries[entry.id] = entry

    @classmethod
    def from_data(cls, data: Any, base_dir: Optional[Path] = None) -> "PluginCatalog":
        raw_entries = data.get("plugins", []) if isinstance(data, dict) else []
        entries = []
        for raw in raw_entries:
            try:
                entry = CatalogEntry.model_validate(raw)
            except ValidationError as e:
                logger.error(f"Skipping invalid catalog entry: {e}")
                continue
            if base_dir is not None and not is_url(entry.source) and not Path(entry.source).is_absolute():
                entry = entry.model_copy(update={"source": str((base_dir / entry.source).resolve())})
            entries.append(entry)
        return cls(entries)

    @classmethod
    async def load(cls, location: str, timeout: float = DEFAULT_NETWORK_TIMEOUT) -> "PluginCatalog":
        """Load a catalog; a missing or unreadable catalog yields an empty one."""
        if not location:
            return cls()
        try:
            if is_url(location):
                async with aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=timeout)
                ) as session:
                    async with session.get(location) as resp:
                        resp.raise_for_status()
                        data = await resp.json(content_type=None)
                return cls.from_data(data)

            path = Path(location).expanduser()
            if not path.exists():
                logger.debug(f"Catalog not found: {path}")
                return cls()
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return cls.from_data(data, base_dir=path.parent)
        except (aiohttp.ClientError, json.JSONDecodeError, OSError) as e:
            logger.error(f"Error loading plugin catalog {location}: {e}")
            return cls()

    def get(self, plugin_id: str) -> Optional[CatalogEntry]:
        return self._entries.get(plugin_id)

    def search(
        self, query: str = "", category: PluginCategory = PluginCategory.ALL
    ) -> List[CatalogEntry]:
        """Case-insensitive name/description match, filtered by category."""
        results = [e for e in self._entries.values() if e.matches(query, category)]
        return sorted(results, key=lambda e: e.manifest.name.lower())

    def __len__(self) -> int:
        return len(self._entries)
