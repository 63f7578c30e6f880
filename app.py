"""Main FastAPI application for the AICS plugin host."""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()

# Configure logging BEFORE importing any modules that use logger
log_level = os.getenv("LOG_LEVEL", "INFO")
logging.basicConfig(
    level=getattr(logging, log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Import after logging is configured
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from aics import __version__
from aics.config import HostSettings
from aics.plugins.manager import PluginManager
from aics.routers import notifications_router, plugins_router
from aics.services.host import HostServices


def create_app(
    settings: Optional[HostSettings] = None, services: Optional[HostServices] = None
) -> FastAPI:
    """Build the application. The plugin manager lives on ``app.state``."""
    settings = settings or HostSettings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting AICS plugin host")
        logger.info(f"Working directory: {Path.cwd()}")
        logger.info(f"Workspace: {settings.workspace}, environment: {settings.environment.value}")

        manager = PluginManager(settings, services or HostServices.from_settings(settings))
        app.state.plugin_manager = manager
        await manager.load_all()
        try:
            yield
        finally:
            logger.info("Shutting down AICS plugin host")
            await manager.stop_all()

    app = FastAPI(
        title="AICS Plugin Host",
        description="Plugin management and Host API for the AI coding suite",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(plugins_router)  # /api/plugins endpoints
    app.include_router(notifications_router)  # /api/notifications endpoints

    @app.get("/")
    async def root():
        return {"message": "AICS Plugin Host API", "version": __version__, "docs": "/docs"}

    return app


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "9090"))
    uvicorn.run("app:create_app", factory=True, host="0.0.0.0", port=port)
