#!/usr/bin/env python3
"""Plugin management CLI tool."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables FIRST (before importing project modules)
load_dotenv()

from pydantic import BaseModel
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from aics.config import HostSettings
from aics.plugins.bundle import BundleVerifier
from aics.plugins.catalog import PluginCatalog, PluginCategory
from aics.plugins.errors import PluginError
from aics.plugins.manager import PluginManager
from aics.services.host import HostServices

console = Console()


def setup_logging(settings: HostSettings) -> None:
    """Log everything to a file; only warnings reach the console."""
    log_dir = settings.home_dir / "log"
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)

    file_handler = logging.FileHandler(log_dir / "plugins.log", encoding="utf-8")
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
        )
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)


def fail(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    sys.exit(1)


async def cmd_list(manager: PluginManager, args):
    """List all discovered plugins."""
    plugins = manager.list_plugins()
    if not plugins:
        console.print("No plugins found.")
        return

    table = Table(title="Plugins")
    for column in ("ID", "Name", "Version", "Source", "Enabled", "Capabilities"):
        table.add_column(column)
    for p in plugins:
        table.add_row(
            p["id"],
            p["name"],
            p["version"],
            p["source"],
            "Yes" if p["enabled"] else "No",
            ", ".join(p["capabilities"]),
        )
    console.print(table)


async def cmd_info(manager: PluginManager, args):
    """Show detailed plugin information."""
    info = manager.get_plugin_info(args.plugin_id)
    if not info:
        fail(f"Plugin '{args.plugin_id}' not found.")

    lines = [
        f"Name:         {info['name']}",
        f"Version:      {info['version']}",
        f"Author:       {info['author']}",
        f"Description:  {info['description']}",
        f"Source:       {info['source']}",
        f"Path:         {info['path']}",
        f"Capabilities: {', '.join(info['capabilities']) or '-'}",
        f"Permissions:  {', '.join(info['permissions']) or '-'}",
        f"Dependencies: {', '.join(info['dependencies']) or '-'}",
        f"Requires:     host >= {info['minimum_app_version']}",
        f"Enabled:      {info['enabled']}",
    ]
    if info["config"]:
        lines.append(f"Config:       {json.dumps(info['config'], indent=2, ensure_ascii=False)}")
    if info["install_record"]:
        lines.append(f"Installed:    {info['install_record'].get('installed_at')} "
                     f"from {info['install_record'].get('source')}")
    console.print(Panel("\n".join(lines), title=info["id"], border_style="blue"))


async def cmd_install(manager: PluginManager, args):
    """Install a plugin from a path, zip, URL or the catalog."""
    if args.catalog:
        plugin = await manager.install_from_catalog(args.source, upgrade=args.upgrade)
    else:
        source = args.source
        if not source.startswith(("http://", "https://")):
            source = str(Path(source).expanduser().resolve())
        plugin = await manager.install(source, upgrade=args.upgrade)
    console.print(f"[green]Plugin '{plugin.id}' {plugin.manifest.version} installed to {plugin.bundle_path}[/green]")
    console.print(f"Run 'python manage_plugins.py enable {plugin.id}' to enable it.")


async def cmd_uninstall(manager: PluginManager, args):
    await manager.uninstall(args.plugin_id)
    console.print(f"Plugin '{args.plugin_id}' uninstalled.")


async def cmd_update(manager: PluginManager, args):
    plugin = await manager.update(args.plugin_id)
    console.print(f"Plugin '{plugin.id}' updated to {plugin.manifest.version}.")


async def cmd_enable(manager: PluginManager, args):
    """Check that a plugin activates, then mark it enabled for the next start."""
    await manager.activate(args.plugin_id)
    console.print(f"Plugin '{args.plugin_id}' enabled. Restart the service to take effect.")


async def cmd_disable(manager: PluginManager, args):
    manager.config_service.disable(args.plugin_id)
    console.print(f"Plugin '{args.plugin_id}' disabled. Restart the service to take effect.")


async def cmd_available(manager: PluginManager, args):
    """Search the plugin catalog."""
    entries = manager.list_available(args.query, PluginCategory(args.category))
    if not entries:
        console.print("No matching plugins in the catalog.")
        return

    table = Table(title="Available plugins")
    for column in ("ID", "Name", "Version", "Description", "Installed"):
        table.add_column(column)
    for e in entries:
        table.add_row(e["id"], e["name"], e["version"], e["description"], "Yes" if e["installed"] else "No")
    console.print(table)


async def cmd_run(manager: PluginManager, args):
    """Activate a plugin and run one of its commands."""
    try:
        command_args = json.loads(args.args) if args.args else {}
    except json.JSONDecodeError as e:
        fail(f"--args is not valid JSON: {e}")
    if not isinstance(command_args, dict):
        fail("--args must be a JSON object")

    await manager.engine.activate(args.plugin_id)
    result = await manager.execute_command(args.plugin_id, args.command_name, command_args)
    if isinstance(result, BaseModel):
        console.print_json(result.model_dump_json())
    elif result is None:
        console.print("(no result)")
    else:
        console.print_json(json.dumps(result, default=str, ensure_ascii=False))


async def cmd_sign(manager: PluginManager, args):
    """Write signature.json for a bundle directory."""
    bundle = Path(args.path).expanduser().resolve()
    if not bundle.is_dir():
        fail(f"Not a directory: {bundle}")
    verifier = BundleVerifier(manager.settings.signing_key)
    payload = verifier.sign(bundle)
    console.print(f"Signed {bundle} (sha256 {payload['bundle_sha256']})")


async def cmd_doctor(manager: PluginManager, args):
    """Run health checks on the plugin system."""
    settings = manager.settings
    issues = []

    if not settings.bundled_dir.exists():
        issues.append(f"Bundled plugins directory missing: {settings.bundled_dir}")
    if not settings.plugins_dir.exists():
        issues.append(f"Installed plugins directory missing: {settings.plugins_dir}")
    for p in settings.extra_plugin_paths:
        if not p.exists():
            issues.append(f"PLUGIN_PATHS entry missing: {p}")

    if settings.config_file.exists():
        try:
            with open(settings.config_file, encoding="utf-8") as f:
                json.load(f)
        except json.JSONDecodeError as e:
            issues.append(f"Plugin config file has invalid JSON: {e}")

    if settings.require_signatures and not settings.signing_key:
        issues.append("Signatures are required but AICS_PLUGIN_SIGNING_KEY is not set")

    enabled_ids = manager.config_service.get_enabled_list()
    for eid in enabled_ids:
        if not manager.registry.has(eid):
            issues.append(f"Enabled plugin '{eid}' not found in any search path")

    for plugin in manager.registry.get_all():
        for dep in plugin.manifest.dependencies or ():
            if not manager.registry.has(dep):
                issues.append(f"Plugin '{plugin.id}' depends on missing plugin '{dep}'")

    catalog = await PluginCatalog.load(settings.catalog)

    if issues:
        console.print(f"[yellow]Found {len(issues)} issue(s):[/yellow]")
        for i, issue in enumerate(issues, 1):
            console.print(f"  {i}. {issue}")
        sys.exit(1)
    console.print(
        f"[green]All checks passed.[/green] {manager.registry.count()} plugin(s) found, "
        f"{len(enabled_ids)} enabled, {len(catalog)} in catalog."
    )


async def run(handler, args, settings: HostSettings) -> None:
    manager = PluginManager(settings, HostServices.from_settings(settings))
    await manager.rescan()
    if args.command in ("available", "install"):
        manager.catalog = await PluginCatalog.load(settings.catalog)
    try:
        await handler(manager, args)
    finally:
        await manager.stop_all()


def main():
    parser = argparse.ArgumentParser(description="AICS Plugin Manager")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("list", help="List all plugins")

    info_parser = subparsers.add_parser("info", help="Show plugin details")
    info_parser.add_argument("plugin_id", help="Plugin ID")

    install_parser = subparsers.add_parser("install", help="Install a plugin bundle")
    install_parser.add_argument("source", help="Bundle directory, .zip, URL, or catalog id with --catalog")
    install_parser.add_argument("--upgrade", action="store_true", help="Replace an installed plugin")
    install_parser.add_argument("--catalog", action="store_true", help="Treat source as a catalog id")

    uninstall_parser = subparsers.add_parser("uninstall", help="Remove an installed plugin")
    uninstall_parser.add_argument("plugin_id", help="Plugin ID")

    update_parser = subparsers.add_parser("update", help="Reinstall a plugin from its original source")
    update_parser.add_argument("plugin_id", help="Plugin ID")

    enable_parser = subparsers.add_parser("enable", help="Enable a plugin")
    enable_parser.add_argument("plugin_id", help="Plugin ID")

    disable_parser = subparsers.add_parser("disable", help="Disable a plugin")
    disable_parser.add_argument("plugin_id", help="Plugin ID")

    available_parser = subparsers.add_parser("available", help="Search the plugin catalog")
    available_parser.add_argument("--query", default="", help="Match against name and description")
    available_parser.add_argument(
        "--category", default="all", choices=[c.value for c in PluginCategory]
    )

    run_parser = subparsers.add_parser("run", help="Run a plugin command")
    run_parser.add_argument("plugin_id", help="Plugin ID")
    run_parser.add_argument("command_name", help="Command name")
    run_parser.add_argument("--args", default=None, help="Command arguments as a JSON object")

    sign_parser = subparsers.add_parser("sign", help="Sign a bundle directory")
    sign_parser.add_argument("path", help="Path to bundle directory")

    subparsers.add_parser("doctor", help="Run health checks")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "list": cmd_list,
        "info": cmd_info,
        "install": cmd_install,
        "uninstall": cmd_uninstall,
        "update": cmd_update,
        "enable": cmd_enable,
        "disable": cmd_disable,
        "available": cmd_available,
        "run": cmd_run,
        "sign": cmd_sign,
        "doctor": cmd_doctor,
    }

    settings = HostSettings.from_env()
    setup_logging(settings)
    try:
        asyncio.run(run(commands[args.command], args, settings))
    except PluginError as e:
        fail(f"Error: {e}")


if __name__ == "__main__":
    main()
