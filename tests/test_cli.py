"""Tests for the manage_plugins command line tool."""

import logging
import sys

import pytest

import manage_plugins
from aics.plugins.bundle import BundleVerifier


@pytest.fixture
def cli_env(monkeypatch, tmp_path):
    """Point the CLI at an empty home directory."""
    home = tmp_path / "home"
    bundled = tmp_path / "bundled"
    bundled.mkdir()
    monkeypatch.setenv("AICS_HOME", str(home))
    monkeypatch.setenv("AICS_BUNDLED_PLUGINS_DIR", str(bundled))
    monkeypatch.setenv("AICS_CATALOG", str(tmp_path / "catalog.json"))
    monkeypatch.setenv("AICS_WORKSPACE", str(tmp_path))
    monkeypatch.setenv("AICS_PLUGIN_SIGNING_KEY", "secret")
    for name in ("AICS_ENV", "AICS_PLUGINS_DIR", "AICS_PLUGIN_CONFIG", "AICS_REQUIRE_SIGNATURES", "PLUGIN_PATHS"):
        monkeypatch.delenv(name, raising=False)

    root_logger = logging.getLogger()
    handlers_before = list(root_logger.handlers)
    level_before = root_logger.level

    def run(*argv):
        monkeypatch.setattr(sys, "argv", ["manage_plugins.py", *argv])
        manage_plugins.main()

    yield run

    # setup_logging attaches handlers on every run
    for handler in list(root_logger.handlers):
        if handler not in handlers_before:
            root_logger.removeHandler(handler)
            handler.close()
    root_logger.setLevel(level_before)


class TestCli:
    """End-to-end runs of manage_plugins.main."""

    def test_install_list_and_uninstall(self, cli_env, make_bundle, tmp_path, capsys):
        installed = tmp_path / "home" / "plugins" / "com.example.cli.aicsplugin"

        cli_env("install", str(make_bundle("com.example.cli")))
        assert (installed / "manifest.json").is_file()

        cli_env("list")
        assert "Plugins" in capsys.readouterr().out

        cli_env("uninstall", "com.example.cli")
        assert not installed.exists()

    def test_enable_then_run(self, cli_env, make_bundle, capsys):
        cli_env("install", str(make_bundle("com.example.cli")))
        cli_env("enable", "com.example.cli")
        cli_env("run", "com.example.cli", "echo", "--args", '{"n": 1}')

        output = capsys.readouterr().out
        assert "enabled" in output
        assert '"n": 1' in output

    def test_sign_writes_valid_signature(self, cli_env, make_bundle):
        bundle = make_bundle("com.example.signed")
        cli_env("sign", str(bundle))
        assert BundleVerifier("secret", require_signatures=True).verify(bundle)

    def test_plugin_error_exits_nonzero(self, cli_env, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli_env("uninstall", "com.example.ghost")
        assert exc_info.value.code == 1
        assert "not installed" in capsys.readouterr().out

    def test_invalid_run_args(self, cli_env, make_bundle):
        cli_env("install", str(make_bundle("com.example.cli")))
        with pytest.raises(SystemExit):
            cli_env("run", "com.example.cli", "echo", "--args", "[1, 2]")
