"""Database models."""

from .session import PromptSession
from .version import ImageVersion

__all__ = ["PromptSession", "ImageVersion"]
