"""Upload and edit API endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from ..schemas.edit import (
    EditRequest,
    EditResponse,
    StructuredEditRequest,
    StructuredEditResponse,
    UploadResponse,
)
from ..services import EditOrchestrator
from .deps import get_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["edits"])


@router.post("/upload", response_model=UploadResponse)
def upload_image(
    file: UploadFile = File(...),
    asset_type: str = Form("photo"),
    base_prompt: str = Form(""),
    design_intent: Optional[str] = Form(None),
    aspect_ratio: Optional[str] = Form(None),
    orchestrator: EditOrchestrator = Depends(get_orchestrator),
):
    """Seed a session and a root version from an uploaded floor plan or photo."""
    data = file.file.read()
    return orchestrator.upload(
        data,
        mime_type=file.content_type or "image/png",
        design_intent=design_intent if design_intent is not None else base_prompt,
        asset_type=asset_type,
        aspect_ratio=aspect_ratio,
    )


@router.post("/edit", response_model=EditResponse)
def edit_image(
    request: EditRequest,
    orchestrator: EditOrchestrator = Depends(get_orchestrator),
):
    """Run a conversational edit and branch a new version off the previous one."""
    return orchestrator.edit(request)


@router.post("/edit/structured", response_model=StructuredEditResponse)
def apply_structured_edit(
    request: StructuredEditRequest,
    orchestrator: EditOrchestrator = Depends(get_orchestrator),
):
    """Apply a list of render/local-edit operations in order."""
    return orchestrator.apply_operations(request)
