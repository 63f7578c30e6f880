"""Tests for InstallationManager."""

import asyncio
import gc
import json
import shutil
import time
from unittest.mock import patch

import pytest

from aics.plugins.bundle import BundleVerifier
from aics.plugins.errors import IncompatibleVersionError, InstallError, NotFoundError
from aics.plugins.installer import InstallationManager, read_install_record
from aics.plugins.registry import PluginState
from tests.conftest import manifest_dict, write_bundle, zip_bundle


@pytest.fixture
def plugins_dir(tmp_path):
    return tmp_path / "installed"


@pytest.fixture
def installer(registry, engine, plugins_dir):
    return InstallationManager(
        registry,
        engine,
        plugins_dir,
        search_paths=[(plugins_dir, "installed")],
        app_version="1.0.0",
        install_timeout=5.0,
    )


class TestInstall:
    """Tests for InstallationManager.install."""

    @pytest.mark.asyncio
    async def test_install_from_directory(self, installer, registry, plugins_dir, make_bundle):
        bundle = make_bundle("com.example.fmt")

        plugin = await installer.install(str(bundle))

        assert plugin.id == "com.example.fmt"
        assert plugin.source == "installed"
        assert plugin.bundle_path == (plugins_dir / "com.example.fmt.aicsplugin").resolve()
        assert registry.get("com.example.fmt") is plugin
        # the source bundle is copied, not moved
        assert bundle.exists()

    @pytest.mark.asyncio
    async def test_install_from_zip(self, installer, registry, make_bundle, tmp_path):
        bundle = make_bundle("com.example.zipped")
        archive = zip_bundle(bundle, tmp_path / "zipped.zip")

        plugin = await installer.install(str(archive))

        assert registry.has("com.example.zipped")
        assert (plugin.bundle_path / "main.py").exists()

    @pytest.mark.asyncio
    async def test_install_writes_record(self, installer, make_bundle):
        bundle = make_bundle()
        plugin = await installer.install(str(bundle))

        record = read_install_record(plugin)
        assert record["source"] == str(bundle)
        assert len(record["sha256"]) == 64
        assert "installed_at" in record

    @pytest.mark.asyncio
    async def test_staging_is_cleaned_up(self, installer, plugins_dir, make_bundle):
        await installer.install(str(make_bundle()))
        assert list((plugins_dir / ".staging").iterdir()) == []

    @pytest.mark.asyncio
    async def test_incompatible_bundle_not_installed(self, installer, registry, make_bundle):
        bundle = make_bundle("com.example.future", minimumAppVersion="9.0.0")

        with pytest.raises(IncompatibleVersionError):
            await installer.install(str(bundle))
        assert registry.count() == 0

    @pytest.mark.asyncio
    async def test_invalid_manifest_becomes_install_error(self, installer, registry, tmp_path):
        bad = tmp_path / "bad.aicsplugin"
        bad.mkdir()
        (bad / "manifest.json").write_text(json.dumps({"id": "com.example.bad"}))

        with pytest.raises(InstallError) as exc_info:
            await installer.install(str(bad))
        assert exc_info.value.__cause__ is not None
        assert registry.count() == 0

    @pytest.mark.asyncio
    async def test_duplicate_without_upgrade_rejected(self, installer, make_bundle):
        bundle = make_bundle()
        await installer.install(str(bundle))

        with pytest.raises(InstallError, match="already installed"):
            await installer.install(str(bundle))

    @pytest.mark.asyncio
    async def test_upgrade_replaces_and_deactivates(
        self, installer, registry, engine, make_bundle, tmp_path
    ):
        """Upgrading an active plugin swaps the bundle and leaves it inactive."""
        old = make_bundle("com.example.up", version="1.0.0")
        await installer.install(str(old))
        await engine.activate("com.example.up")

        new = make_bundle("com.example.up", parent=tmp_path / "v2", version="1.1.0")
        plugin = await installer.install(str(new), upgrade=True)

        assert plugin.manifest.version == "1.1.0"
        assert registry.get("com.example.up").manifest.version == "1.1.0"
        assert engine.state("com.example.up") == PluginState.INACTIVE

    @pytest.mark.asyncio
    async def test_bundled_plugin_cannot_be_replaced(
        self, installer, install_plugin, make_bundle, tmp_path
    ):
        install_plugin(make_bundle("com.example.core", parent=tmp_path / "bundled"), "bundled")
        with pytest.raises(InstallError, match="bundled plugin"):
            await installer.install(str(make_bundle("com.example.core")), upgrade=True)

    @pytest.mark.asyncio
    async def test_signature_required(self, registry, engine, plugins_dir, make_bundle):
        installer = InstallationManager(
            registry,
            engine,
            plugins_dir,
            search_paths=[(plugins_dir, "installed")],
            verifier=BundleVerifier("secret", require_signatures=True),
            app_version="1.0.0",
        )
        unsigned = make_bundle("com.example.unsigned")
        with pytest.raises(InstallError, match="not signed"):
            await installer.install(str(unsigned))

        signed = make_bundle("com.example.signed")
        BundleVerifier("secret").sign(signed)
        plugin = await installer.install(str(signed))
        assert plugin.id == "com.example.signed"

    @pytest.mark.asyncio
    async def test_install_timeout(self, registry, engine, plugins_dir, make_bundle):
        installer = InstallationManager(
            registry, engine, plugins_dir, search_paths=[], install_timeout=0.1
        )

        async def slow_fetch(source, staging, timeout):
            await asyncio.sleep(5)

        with patch("aics.plugins.installer.fetch_bundle", slow_fetch):
            with pytest.raises(InstallError, match="timed out"):
                await installer.install(str(make_bundle()))
        assert registry.count() == 0

    @pytest.mark.asyncio
    async def test_missing_source(self, installer, tmp_path):
        with pytest.raises(InstallError):
            await installer.install(str(tmp_path / "does-not-exist"))


class TestUninstall:
    """Tests for InstallationManager.uninstall."""

    @pytest.mark.asyncio
    async def test_uninstall_removes_everything(self, installer, registry, engine, make_bundle):
        plugin = await installer.install(str(make_bundle()))
        await engine.activate(plugin.id)

        await installer.uninstall(plugin.id)

        assert not registry.has(plugin.id)
        assert not plugin.bundle_path.exists()
        assert engine.state(plugin.id) == PluginState.INACTIVE

    @pytest.mark.asyncio
    async def test_uninstall_unknown(self, installer):
        with pytest.raises(NotFoundError):
            await installer.uninstall("com.example.ghost")

    @pytest.mark.asyncio
    async def test_uninstall_bundled_rejected(self, installer, install_plugin, make_bundle):
        plugin = install_plugin(make_bundle(), "bundled")
        with pytest.raises(InstallError, match="cannot be uninstalled"):
            await installer.uninstall(plugin.id)
        assert plugin.bundle_path.exists()


class TestDiscover:
    """Tests for InstallationManager.discover."""

    @pytest.mark.asyncio
    async def test_discover_replaces_installed_set(self, installer, registry, make_bundle, plugins_dir):
        make_bundle("com.example.a", parent=plugins_dir)
        make_bundle("com.example.b", parent=plugins_dir)

        await installer.discover()

        assert registry.ids() == ["com.example.a", "com.example.b"]

    @pytest.mark.asyncio
    async def test_vanished_plugin_is_deactivated(self, installer, registry, engine, make_bundle):
        plugin = await installer.install(str(make_bundle()))
        await engine.activate(plugin.id)

        shutil.rmtree(plugin.bundle_path)
        await installer.discover()

        assert not registry.has(plugin.id)
        assert not engine.is_active(plugin.id)


class TestConcurrentRescan:
    """A rescan never loses an install or uninstall that overlaps it."""

    @staticmethod
    def slow_down_scan(installer, delay=0.3):
        scan = installer.discovery.discover_all

        def _scan():
            plugins = scan()
            time.sleep(delay)
            return plugins

        installer.discovery.discover_all = _scan

    @pytest.mark.asyncio
    async def test_install_during_rescan_is_kept(self, installer, registry, plugins_dir, make_bundle):
        plugins_dir.mkdir(parents=True)
        self.slow_down_scan(installer)

        rescan = asyncio.create_task(installer.discover())
        await asyncio.sleep(0.05)
        plugin = await installer.install(str(make_bundle("com.example.late")))
        await rescan

        assert registry.get("com.example.late") is not None
        assert plugin.bundle_path.exists()

    @pytest.mark.asyncio
    async def test_uninstall_during_rescan_stays_uninstalled(self, installer, registry, make_bundle):
        plugin = await installer.install(str(make_bundle("com.example.gone")))
        self.slow_down_scan(installer)

        rescan = asyncio.create_task(installer.discover())
        await asyncio.sleep(0.05)
        await installer.uninstall(plugin.id)
        await rescan

        assert not registry.has(plugin.id)
        assert not plugin.bundle_path.exists()


class TestUpgradeLayout:
    """Upgrades and lock bookkeeping."""

    @pytest.mark.asyncio
    async def test_upgrade_moves_aside_differently_named_bundle(
        self, installer, registry, plugins_dir, make_bundle
    ):
        write_bundle(plugins_dir, manifest_dict("com.example.sample"), dirname="sample.aicsplugin")
        await installer.discover()
        assert registry.get("com.example.sample").bundle_path.name == "sample.aicsplugin"

        await installer.install(str(make_bundle(version="2.0.0")), upgrade=True)
        assert not (plugins_dir / "sample.aicsplugin").exists()
        assert registry.get("com.example.sample").manifest.version == "2.0.0"

        await installer.uninstall("com.example.sample")
        await installer.discover()

        assert not registry.has("com.example.sample")
        assert [p.name for p in plugins_dir.iterdir() if p.name.endswith(".aicsplugin")] == []

    @pytest.mark.asyncio
    async def test_locks_dropped_after_uninstall(self, installer, engine, make_bundle):
        plugin = await installer.install(str(make_bundle()))
        await engine.activate(plugin.id)
        await installer.uninstall(plugin.id)
        gc.collect()

        assert plugin.id not in installer._locks
        assert plugin.id not in engine._locks
