"""API routers package."""

from .notifications import router as notifications_router
from .plugins import router as plugins_router

__all__ = ["notifications_router", "plugins_router"]
