"""API routes."""

from .edits import router as edits_router
from .versions import router as versions_router

__all__ = [
    "edits_router",
    "versions_router",
]
