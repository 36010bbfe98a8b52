"""Routers module - FastAPI route handlers"""

from . import config, edit, retrieval

__all__ = ["config", "edit", "retrieval"]
