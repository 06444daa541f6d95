"""Version graph API endpoints: angle lookup, lineage, and view."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..exceptions import ValidationError
from ..schemas.version import (
    AngleRenderResponse,
    HistoryResponse,
    LineageEntry,
    VersionResponse,
    ViewResponse,
)
from ..services import VersionGraph
from .deps import get_version_graph

router = APIRouter(prefix="/api", tags=["versions"])


@router.get("/render-angle", response_model=AngleRenderResponse)
def render_angle(
    angle_id: Optional[str] = Query(None),
    graph: VersionGraph = Depends(get_version_graph),
):
    """Latest version rendered for a camera angle."""
    if not angle_id:
        raise ValidationError("angle_id is required", field="angle_id")
    version = graph.locate_latest(angle_id)
    return AngleRenderResponse(
        version_id=version.id,
        public_url=version.image_url,
        diff_summary=version.diff_summary,
        metadata=version.version_metadata or {},
    )


@router.get("/history/{version_id}", response_model=HistoryResponse)
def version_history(
    version_id: str,
    graph: VersionGraph = Depends(get_version_graph),
):
    """The version and every version branched from it, shallowest first."""
    entries = []
    for version, depth in graph.lineage(version_id):
        base = VersionResponse.model_validate(version)
        entries.append(LineageEntry(**base.model_dump(), depth=depth))
    return HistoryResponse(versions=entries)


@router.get("/view/{identifier}", response_model=ViewResponse)
def view_image(
    identifier: str,
    graph: VersionGraph = Depends(get_version_graph),
):
    """Resolve a version id or stored image id to its public URL."""
    version = graph.resolve_view(identifier)
    return ViewResponse(
        version_id=version.id,
        image_id=version.image_id,
        public_url=version.image_url,
        metadata=version.version_metadata or {},
    )
