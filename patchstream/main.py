"""
Patchstream Backend - FastAPI Application Entry Point
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from patchstream import __version__
from patchstream.logging_utils import configure_logging
from patchstream.routers import config, session
from patchstream.services.config_manager import ConfigManager
from patchstream.services.session import SessionRegistry, build_local_session

logger = logging.getLogger(__name__)


def create_registry(config_manager: ConfigManager) -> SessionRegistry:
    """Registry whose sessions use the local workspace and the configured model"""

    def factory(session_id, workspace_root, settings):
        return build_local_session(session_id, workspace_root, settings, config_manager.get_config())

    return SessionRegistry(factory)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - startup and shutdown logic"""
    config_manager = ConfigManager.get_instance()
    configure_logging(config_manager.get_config().get("server", {}).get("logFile"))
    logger.info("Starting Patchstream backend (config: %s)", config_manager.config_file)

    # Tests may install their own registry before startup
    if getattr(app.state, "sessions", None) is None:
        app.state.sessions = create_registry(config_manager)

    yield

    logger.info("Shutting down Patchstream backend (%d open sessions)", len(app.state.sessions))
    await app.state.sessions.close_all()


app = FastAPI(
    title="Patchstream Backend",
    description="Streaming edit engine for AI pair programming",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware for local editor clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(session.router, prefix="/api/sessions", tags=["sessions"])
app.include_router(config.router, prefix="/api/config", tags=["config"])


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "patchstream-backend"}


def run():
    import uvicorn

    server = ConfigManager.get_instance().get_config().get("server", {})
    uvicorn.run(app, host=server.get("host", "127.0.0.1"), port=int(server.get("port", 8000)))


if __name__ == "__main__":
    run()
