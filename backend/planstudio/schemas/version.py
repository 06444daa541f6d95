"""Version schemas."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class VersionMetadata(BaseModel):
    """Typed provenance attached to every version.

    Fixed fields cover what the graph and locator depend on; anything else
    travels in ``extensions``. Unknown keys found in stored JSON are folded
    into ``extensions`` on read.
    """
    model_config = ConfigDict(extra="forbid")

    parent_id: Optional[str] = None
    intent_hash: str
    timestamp: datetime
    source: Literal["upload", "generation"]
    model: str
    angle_id: Optional[str] = None
    aspect_ratio: Optional[str] = None
    asset_type: Optional[str] = None
    input_image_ids: List[str] = Field(default_factory=list)
    extensions: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_extensions(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        known = set(cls.model_fields)
        extras = {k: v for k, v in data.items() if k not in known}
        if not extras:
            return data
        merged = {k: v for k, v in data.items() if k in known}
        merged["extensions"] = {**extras, **(data.get("extensions") or {})}
        return merged

    def to_blob_metadata(self) -> Dict[str, Any]:
        """Flat attribute bag sent to the blob store alongside the bytes."""
        flat = self.model_dump(mode="json", exclude={"extensions"})
        flat.update(self.extensions)
        return flat


class VersionCreate(BaseModel):
    """Schema for creating a version."""
    parent_id: Optional[str] = None
    session_id: str
    design_intent: str = ""
    edit_instruction: Optional[str] = None
    image_id: str
    image_url: str
    metadata: VersionMetadata
    diff_summary: Optional[str] = None
    client_request_id: Optional[str] = None


class VersionResponse(BaseModel):
    """Schema for version response."""
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    parent_id: Optional[str] = None
    session_id: Optional[str] = None
    design_intent: Optional[str] = None
    edit_instruction: Optional[str] = None
    model: str
    image_id: str
    image_url: str
    metadata: Dict[str, Any] = Field(validation_alias="version_metadata")
    aspect_ratio: Optional[str] = None
    angle_id: Optional[str] = None
    diff_summary: Optional[str] = None
    created_at: datetime


class LineageEntry(VersionResponse):
    """A version inside a lineage listing, with its distance from the queried node."""
    depth: int


class HistoryResponse(BaseModel):
    versions: List[LineageEntry]


class AngleRenderResponse(BaseModel):
    version_id: str
    public_url: str
    diff_summary: Optional[str] = None
    metadata: Dict[str, Any]


class ViewResponse(BaseModel):
    version_id: str
    image_id: str
    public_url: str
    metadata: Dict[str, Any]
