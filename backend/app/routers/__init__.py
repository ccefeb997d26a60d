"""Routers package."""

from .clients import router as clients_router
from .finances import router as finances_router
from .sessions import router as sessions_router

__all__ = [
    "clients_router",
    "finances_router",
    "sessions_router",
]
