"""Pydantic schemas for API validation."""

from .session import InlineData, Part, Turn
from .version import (
    VersionMetadata,
    VersionCreate,
    VersionResponse,
    LineageEntry,
    HistoryResponse,
    AngleRenderResponse,
    ViewResponse,
)
from .edit import (
    MaskInput,
    EditRequest,
    EditResponse,
    UploadResponse,
    StructuredEditRequest,
    StructuredEditResponse,
)

__all__ = [
    "InlineData",
    "Part",
    "Turn",
    "VersionMetadata",
    "VersionCreate",
    "VersionResponse",
    "LineageEntry",
    "HistoryResponse",
    "AngleRenderResponse",
    "ViewResponse",
    "MaskInput",
    "EditRequest",
    "EditResponse",
    "UploadResponse",
    "StructuredEditRequest",
    "StructuredEditResponse",
]
