"""Data access repositories."""

from .base import BaseRepository
from .session_repository import SessionRepository
from .version_repository import VersionRepository

__all__ = [
    "BaseRepository",
    "SessionRepository",
    "VersionRepository",
]
