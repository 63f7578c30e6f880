"""Shared fixtures: bundle builders, host settings and mocked host services."""

import json
import zipfile
from pathlib import Path
from typing import Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from aics.config import HostSettings
from aics.plugins.commands import HttpResponse, TerminalResult
from aics.plugins.lifecycle import ActivationEngine
from aics.plugins.registry import Plugin, PluginContext, PluginRegistry
from aics.services.clipboard import ClipboardService
from aics.services.host import HostServices
from aics.services.notifications import NotificationService
from aics.services.workspace import WorkspaceService

DEFAULT_SOURCE = '''
class SamplePlugin:
    def __init__(self, api):
        self.api = api
        self.context = None
        self.cleaned_up = False

    async def initialize(self, context):
        self.context = context

    async def cleanup(self):
        self.cleaned_up = True


def register(api):
    plugin = SamplePlugin(api)
    api.register_command("echo", lambda args: args)
    return plugin
'''

FAILING_SOURCE = '''
def register(api):
    raise RuntimeError("register failed")
'''


def manifest_dict(plugin_id: str = "com.example.sample", **overrides) -> dict:
    data = {
        "id": plugin_id,
        "name": "Sample",
        "version": "1.0.0",
        "author": "Tester",
        "description": "A sample plugin",
        "capabilities": ["commands"],
        "permissions": [],
        "entryPoint": "main.py:register",
        "minimumAppVersion": "1.0.0",
    }
    data.update(overrides)
    return data


def write_bundle(
    parent: Path,
    manifest: dict,
    source: str = DEFAULT_SOURCE,
    files: Optional[Dict[str, str]] = None,
    dirname: Optional[str] = None,
) -> Path:
    """Write a bundle directory under ``parent`` and return its path."""
    root = parent / (dirname or f"{manifest['id']}.aicsplugin")
    root.mkdir(parents=True)
    (root / "manifest.json").write_text(json.dumps(manifest), encoding="utf-8")
    entry = manifest.get("entryPoint", "main.py").split(":")[0]
    all_files = {entry: source}
    all_files.update(files or {})
    for name, content in all_files.items():
        target = root / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return root


def zip_bundle(bundle: Path, archive: Path, nested: bool = True) -> Path:
    """Zip a bundle directory, optionally inside one top-level directory."""
    with zipfile.ZipFile(archive, "w") as zf:
        for item in bundle.rglob("*"):
            if item.is_file():
                rel = item.relative_to(bundle.parent if nested else bundle)
                zf.write(item, rel.as_posix())
    return archive


@pytest.fixture
def make_bundle(tmp_path):
    """Factory: make_bundle(plugin_id, parent=None, source=..., files=..., **manifest_fields)."""
    sources = tmp_path / "sources"

    def _make(plugin_id="com.example.sample", parent=None, source=DEFAULT_SOURCE, files=None, **fields):
        return write_bundle(parent or sources, manifest_dict(plugin_id, **fields), source, files)

    return _make


@pytest.fixture
def workspace(tmp_path) -> Path:
    ws = tmp_path / "workspace"
    ws.mkdir()
    return ws


@pytest.fixture
def services(workspace) -> HostServices:
    """Real workspace/clipboard/notifications; terminal, network and AI mocked."""
    terminal = MagicMock()
    terminal.execute = AsyncMock(
        return_value=TerminalResult(exit_code=0, stdout="ok\n", stderr="")
    )
    network = MagicMock()
    network.request = AsyncMock(return_value=HttpResponse(status=200, body="pong"))
    ai = MagicMock()
    ai.complete = AsyncMock(return_value="completion")
    return HostServices(
        workspace=WorkspaceService(workspace),
        terminal=terminal,
        network=network,
        clipboard=ClipboardService(),
        notifications=NotificationService(),
        ai=ai,
    )


@pytest.fixture
def registry() -> PluginRegistry:
    return PluginRegistry()


@pytest.fixture
def engine(registry, services) -> ActivationEngine:
    return ActivationEngine(
        registry,
        services,
        context=PluginContext(app_version="1.0.0"),
        activation_timeout=2.0,
        command_timeout=2.0,
    )


@pytest.fixture
def install_plugin(registry):
    """Register a bundle directory straight into the installed set."""

    def _install(bundle: Path, source: str = "installed") -> Plugin:
        plugin = Plugin.from_bundle(bundle, source)
        registry.register(plugin)
        return plugin

    return _install


@pytest.fixture
def settings(tmp_path, workspace) -> HostSettings:
    home = tmp_path / "home"
    bundled = tmp_path / "bundled"
    bundled.mkdir()
    return HostSettings(
        home_dir=home,
        plugins_dir=home / "plugins",
        bundled_dir=bundled,
        config_file=home / "plugins.json",
        catalog=str(tmp_path / "catalog.json"),
        workspace=workspace,
        activation_timeout=2.0,
        command_timeout=2.0,
        install_timeout=10.0,
    )
