"""Plugin manifest model - describes a plugin's identity, capabilities and permissions."""

import json
import re
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import FrozenSet, Optional, Tuple, Union

from packaging.version import InvalidVersion, Version
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)

from aics.constants import DEFAULT_ENTRY_CALLABLE, MANIFEST_FILE
from aics.plugins.errors import IncompatibleVersionError, ParseError

_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_SEMVER_PATTERN = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)


class PluginCapability(str, Enum):
    """What a plugin declares it provides."""

    COMMANDS = "commands"
    UI = "ui"
    LANGUAGE_SUPPORT = "languageSupport"
    THEME = "theme"
    SNIPPETS = "snippets"
    LINTER = "linter"
    FORMATTER = "formatter"
    DEBUGGER = "debugger"
    TERMINAL = "terminal"
    FILE_SYSTEM = "fileSystem"
    NETWORK = "network"
    AI = "ai"


class PluginPermission(str, Enum):
    """Privileged Host API operations a plugin may request."""

    FILE_READ = "fileRead"
    FILE_WRITE = "fileWrite"
    NETWORK = "network"
    TERMINAL = "terminal"
    PROCESS = "process"
    CLIPBOARD = "clipboard"
    NOTIFICATIONS = "notifications"


class PluginManifest(BaseModel):
    """Plugin manifest loaded from manifest.json."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., description="Unique plugin identifier, e.g. 'com.example.fmt'")
    name: str = Field(..., min_length=1, description="Human-readable plugin name")
    version: str = Field(..., description="Semantic version of the plugin")
    author: str = Field(..., description="Plugin author")
    description: str = Field(..., description="Plugin description")
    icon: Optional[str] = Field(default=None, description="Icon reference")
    homepage: Optional[str] = Field(default=None, description="Homepage URL")
    capabilities: FrozenSet[PluginCapability] = Field(
        ..., description="Functionality categories the plugin provides"
    )
    permissions: FrozenSet[PluginPermission] = Field(
        ..., description="Host API permissions the plugin requests"
    )
    dependencies: Optional[Tuple[str, ...]] = Field(
        default=None, description="Identifiers of plugins that must be active first"
    )
    entry_point: str = Field(
        ...,
        alias="entryPoint",
        description="Python file relative to the bundle root, optionally ':callable', "
        "e.g. 'main.py:register'",
    )
    minimum_app_version: str = Field(
        ..., alias="minimumAppVersion", description="Oldest host version the plugin runs on"
    )

    @field_validator("id")
    @classmethod
    def id_is_well_formed(cls, v: str) -> str:
        if not _ID_PATTERN.match(v):
            raise ValueError(f"invalid plugin id {v!r}")
        return v

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name cannot be empty")
        return v

    @field_validator("version")
    @classmethod
    def version_is_semver(cls, v: str) -> str:
        if not _SEMVER_PATTERN.match(v):
            raise ValueError(f"version {v!r} is not a semantic version")
        return v

    @field_validator("minimum_app_version")
    @classmethod
    def minimum_app_version_parses(cls, v: str) -> str:
        try:
            Version(v)
        except InvalidVersion:
            raise ValueError(f"minimumAppVersion {v!r} is not a valid version")
        return v

    @field_validator("entry_point")
    @classmethod
    def entry_point_is_relative_python_file(cls, v: str) -> str:
        file_part, _, func = v.partition(":")
        path = PurePosixPath(file_part)
        if not file_part or path.is_absolute() or file_part.startswith("\\"):
            raise ValueError(f"entryPoint {v!r} must be a path relative to the bundle root")
        if ".." in path.parts:
            raise ValueError(f"entryPoint {v!r} must not leave the bundle root")
        if path.suffix != ".py":
            raise ValueError(f"entryPoint {v!r} must reference a .py file")
        if func and not func.isidentifier():
            raise ValueError(f"entryPoint callable {func!r} is not an identifier")
        return v

    @field_validator("dependencies")
    @classmethod
    def dependencies_are_ids(cls, v: Optional[Tuple[str, ...]]) -> Optional[Tuple[str, ...]]:
        if v is None:
            return v
        for dep in v:
            if not _ID_PATTERN.match(dep):
                raise ValueError(f"invalid dependency id {dep!r}")
        return v

    @model_validator(mode="after")
    def no_self_dependency(self):
        if self.dependencies and self.id in self.dependencies:
            raise ValueError(f"plugin {self.id!r} cannot depend on itself")
        return self

    @field_serializer("capabilities", "permissions")
    def _sorted_values(self, value):
        return sorted(item.value for item in value)

    @property
    def entry_file(self) -> str:
        """Entry file path relative to the bundle root."""
        return self.entry_point.partition(":")[0]

    @property
    def entry_callable(self) -> str:
        """Name of the callable invoked with the PluginAPI on activation."""
        return self.entry_point.partition(":")[2] or DEFAULT_ENTRY_CALLABLE


def _summarize(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ())) or "manifest"
        parts.append(f"{loc}: {item.get('msg')}")
    return "; ".join(parts)


def parse_manifest(data: Union[bytes, str]) -> PluginManifest:
    """Parse and validate a manifest document.

    Args:
        data: Raw manifest.json contents

    Returns:
        Validated PluginManifest

    Raises:
        ParseError: If the document is not a JSON object, a required field is
            missing, or any value is invalid. Parsing is all-or-nothing.
    """
    try:
        raw = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ParseError(f"Manifest is not valid JSON: {e}")

    if not isinstance(raw, dict):
        raise ParseError("Manifest must be a JSON object")

    plugin_id = raw.get("id") if isinstance(raw.get("id"), str) else None
    try:
        return PluginManifest.model_validate(raw)
    except ValidationError as e:
        raise ParseError(f"Invalid manifest: {_summarize(e)}", plugin_id)


def serialize_manifest(manifest: PluginManifest) -> bytes:
    """Serialize a manifest back to manifest.json form (camelCase keys)."""
    return manifest.model_dump_json(by_alias=True, exclude_none=True, indent=2).encode("utf-8")


def load_manifest(bundle_root: Path) -> PluginManifest:
    """Read and parse the manifest of a bundle directory."""
    manifest_file = bundle_root / MANIFEST_FILE
    try:
        data = manifest_file.read_bytes()
    except OSError as e:
        raise ParseError(f"Cannot read {manifest_file}: {e}")
    return parse_manifest(data)


def resolve_entry_file(manifest: PluginManifest, bundle_root: Path) -> Path:
    """Resolve the manifest's entry file inside ``bundle_root``.

    Raises:
        ParseError: If the file does not exist or resolves outside the bundle
    """
    root = bundle_root.resolve()
    entry = (root / manifest.entry_file).resolve()
    if root not in entry.parents:
        raise ParseError(
            f"Entry point {manifest.entry_point!r} escapes bundle root {root}", manifest.id
        )
    if not entry.is_file():
        raise ParseError(f"Entry point file missing: {entry}", manifest.id)
    return entry


def check_compatibility(manifest: PluginManifest, app_version: str) -> None:
    """Raise IncompatibleVersionError when the host is older than the manifest requires."""
    if Version(manifest.minimum_app_version) > Version(app_version):
        raise IncompatibleVersionError(manifest.id, manifest.minimum_app_version, app_version)
