"""Upload and edit request/response schemas."""

from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator


class MaskInput(BaseModel):
    """A mask given either inline (base64) or by stored image id."""
    image_id: Optional[str] = None
    data: Optional[str] = None
    mime_type: Optional[str] = None


class EditRequest(BaseModel):
    """Schema for a conversational edit."""
    image_ids: List[str] = Field(..., min_length=1)
    edit_prompt: str = Field(..., min_length=1)
    base_prompt: Optional[str] = None
    previous_version_id: Optional[str] = None
    session_id: Optional[str] = None
    aspect_ratio: Optional[str] = None
    masks: List[MaskInput] = Field(default_factory=list)
    camera_hint: Optional[str] = None
    client_request_id: Optional[str] = Field(default=None, max_length=255)

    @field_validator("edit_prompt")
    @classmethod
    def validate_edit_prompt(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("edit_prompt must not be blank")
        return v


class UploadResponse(BaseModel):
    image_id: str
    version_id: str
    session_id: str
    public_url: str
    diff_summary: str = "Initial upload"
    followup_suggestion: str


class EditResponse(BaseModel):
    new_image_id: str
    version_id: str
    session_id: str
    public_url: str
    diff_summary: str
    followup_suggestion: str
    angle_id: Optional[str] = None
    replayed: bool = False


# ---------------------------------------------------------------------------
# Structured multi-operation edits
# ---------------------------------------------------------------------------

class Camera(BaseModel):
    az: float
    elev: float
    fov: float
    pos: Tuple[float, float, float]


class CameraPreset(BaseModel):
    id: str
    camera: Camera


class PhotoOp(BaseModel):
    """``render_angle`` or ``local_edit``; other op names are skipped."""
    op: str
    angle_id: Optional[str] = None
    instruction: Optional[str] = None
    mask_image_id: Optional[str] = None


class StructuredOps(BaseModel):
    floor_plan_ops: List[Dict[str, Any]] = Field(default_factory=list)
    photo_ops: List[PhotoOp] = Field(default_factory=list)
    style_lock: bool = True


class StructuredEditRequest(BaseModel):
    base_prompt: str = Field(..., min_length=1)
    current_version_id: str
    angles: List[CameraPreset] = Field(default_factory=list)
    edit_request: StructuredOps = Field(default_factory=StructuredOps)
    client_request_id: Optional[str] = Field(default=None, max_length=200)


class ChangelogEntry(BaseModel):
    op: str
    status: Literal["done", "skipped", "blocked", "failed"]
    angle_id: Optional[str] = None
    reason: Optional[str] = None


class PhotoResult(BaseModel):
    angle: str
    before_version_id: str
    after_version_id: str
    before_image_id: str
    after_image_id: str
    public_url_after: str
    notes: str


class VersioningSummary(BaseModel):
    parent_version_id: str
    new_version_ids: List[str] = Field(default_factory=list)
    changelog: List[ChangelogEntry] = Field(default_factory=list)


class FollowUp(BaseModel):
    required: bool = False
    question: Optional[str] = None
    missing: List[str] = Field(default_factory=list)


class StructuredEditResponse(BaseModel):
    photos: List[PhotoResult] = Field(default_factory=list)
    versioning: VersioningSummary
    follow_up: FollowUp = Field(default_factory=FollowUp)
