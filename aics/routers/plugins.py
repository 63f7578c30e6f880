"""Plugin management REST API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.encoders import jsonable_encoder

from aics.dependencies import get_plugin_manager
from aics.models.requests import CommandRequest, PluginConfigUpdate, PluginInstallRequest
from aics.plugins.catalog import PluginCategory
from aics.plugins.errors import (
    CommandError,
    IncompatibleVersionError,
    InstallError,
    LoadError,
    MissingPermissionError,
    NotFoundError,
    ParseError,
    PluginError,
)
from aics.plugins.manager import PluginManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/plugins", tags=["plugins"])

_STATUS_CODES = (
    (NotFoundError, 404),
    (IncompatibleVersionError, 409),
    (MissingPermissionError, 403),
    (ParseError, 400),
    (InstallError, 400),
    (LoadError, 500),
    (CommandError, 500),
)


def to_http_error(error: PluginError) -> HTTPException:
    """Translate a plugin error into an HTTPException."""
    status = next((code for cls, code in _STATUS_CODES if isinstance(error, cls)), 500)
    if status >= 500:
        logger.error(f"Plugin operation failed: {error}")
    return HTTPException(status_code=status, detail=str(error))


@router.get("/")
async def list_plugins(manager: PluginManager = Depends(get_plugin_manager)):
    """List all installed plugins and their state."""
    return {"plugins": manager.list_plugins()}


@router.get("/available")
async def list_available(
    query: str = "",
    category: PluginCategory = PluginCategory.ALL,
    manager: PluginManager = Depends(get_plugin_manager),
):
    """Search the plugin catalog."""
    return {"plugins": manager.list_available(query, category)}


@router.post("/install")
async def install_plugin(
    body: PluginInstallRequest, manager: PluginManager = Depends(get_plugin_manager)
):
    """Install a plugin from a bundle source or the catalog."""
    try:
        if body.catalog_id:
            plugin = await manager.install_from_catalog(body.catalog_id, upgrade=body.upgrade)
        else:
            plugin = await manager.install(body.source, upgrade=body.upgrade)
    except PluginError as e:
        raise to_http_error(e)
    return {
        "message": f"Plugin '{plugin.id}' installed. Use /activate to start it.",
        "plugin": plugin.to_dict(),
    }


@router.post("/rescan")
async def rescan_plugins(manager: PluginManager = Depends(get_plugin_manager)):
    """Rescan plugin directories."""
    plugins = await manager.rescan()
    return {"message": f"Discovered {len(plugins)} plugin(s)", "plugins": manager.list_plugins()}


@router.get("/{plugin_id}")
async def get_plugin(plugin_id: str, manager: PluginManager = Depends(get_plugin_manager)):
    """Get detailed information about a specific plugin."""
    info = manager.get_plugin_info(plugin_id)
    if not info:
        raise HTTPException(status_code=404, detail=f"Plugin '{plugin_id}' not found")
    return info


@router.delete("/{plugin_id}")
async def uninstall_plugin(plugin_id: str, manager: PluginManager = Depends(get_plugin_manager)):
    try:
        await manager.uninstall(plugin_id)
    except PluginError as e:
        raise to_http_error(e)
    return {"message": f"Plugin '{plugin_id}' uninstalled"}


@router.post("/{plugin_id}/update")
async def update_plugin(plugin_id: str, manager: PluginManager = Depends(get_plugin_manager)):
    """Reinstall a plugin from its recorded source."""
    try:
        plugin = await manager.update(plugin_id)
    except PluginError as e:
        raise to_http_error(e)
    return {"message": f"Plugin '{plugin_id}' updated", "plugin": plugin.to_dict()}


@router.post("/{plugin_id}/activate")
async def activate_plugin(plugin_id: str, manager: PluginManager = Depends(get_plugin_manager)):
    """Activate a plugin. It is re-activated on the next startup."""
    try:
        instance = await manager.activate(plugin_id)
    except PluginError as e:
        raise to_http_error(e)
    return {"message": f"Plugin '{plugin_id}' activated", "plugin": instance.to_dict()}


@router.post("/{plugin_id}/deactivate")
async def deactivate_plugin(plugin_id: str, manager: PluginManager = Depends(get_plugin_manager)):
    if manager.get_plugin_info(plugin_id) is None:
        raise HTTPException(status_code=404, detail=f"Plugin '{plugin_id}' not found")
    changed = await manager.deactivate(plugin_id)
    message = "deactivated" if changed else "was not active"
    return {"message": f"Plugin '{plugin_id}' {message}"}


@router.put("/{plugin_id}/config")
async def update_plugin_config(
    plugin_id: str, body: PluginConfigUpdate, manager: PluginManager = Depends(get_plugin_manager)
):
    """Update plugin configuration. Takes effect on next activation."""
    try:
        manager.update_plugin_config(plugin_id, body.config)
    except PluginError as e:
        raise to_http_error(e)
    return {"message": f"Configuration updated for plugin '{plugin_id}'"}


@router.post("/{plugin_id}/commands/{command}")
async def execute_command(
    plugin_id: str,
    command: str,
    body: CommandRequest = CommandRequest(),
    manager: PluginManager = Depends(get_plugin_manager),
):
    """Run a command of an active plugin."""
    if manager.get_plugin_info(plugin_id) is None:
        raise HTTPException(status_code=404, detail=f"Plugin '{plugin_id}' not found")
    try:
        result = await manager.execute_command(plugin_id, command, body.args)
    except PluginError as e:
        raise to_http_error(e)
    return {"plugin_id": plugin_id, "command": command, "result": jsonable_encoder(result)}
