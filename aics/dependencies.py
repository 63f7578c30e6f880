"""FastAPI dependencies.

Services are built once in the app lifespan and stored on ``app.state``;
endpoints receive them through ``Depends`` so tests can supply their own.
"""

from fastapi import HTTPException, Request

from aics.plugins.manager import PluginManager
from aics.services.notifications import NotificationService


def get_plugin_manager(request: Request) -> PluginManager:
    manager = getattr(request.app.state, "plugin_manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="Plugin system not initialized")
    return manager


def get_notification_service(request: Request) -> NotificationService:
    return get_plugin_manager(request).services.notifications
