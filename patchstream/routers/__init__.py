"""Routers module - FastAPI route handlers"""

from . import config, session

__all__ = ["config", "session"]
