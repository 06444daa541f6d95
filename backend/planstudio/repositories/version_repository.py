"""Version repository for database operations.

Insert and read only: versions are never updated or deleted.
"""

from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import or_

from ..models import ImageVersion
from ..schemas.version import VersionCreate
from ..exceptions import VersionNotFoundError
from .base import BaseRepository


class VersionRepository(BaseRepository[ImageVersion]):
    """Repository for image version rows."""

    model_class = ImageVersion
    not_found_error = VersionNotFoundError

    def create(self, version_id: str, version: VersionCreate, created_at: datetime) -> ImageVersion:
        """Insert a new version row and flush it."""
        metadata = version.metadata
        db_version = ImageVersion(
            id=version_id,
            parent_id=version.parent_id,
            session_id=version.session_id,
            design_intent=version.design_intent,
            edit_instruction=version.edit_instruction,
            model=metadata.model,
            image_id=version.image_id,
            image_url=version.image_url,
            version_metadata=metadata.model_dump(mode="json"),
            aspect_ratio=metadata.aspect_ratio,
            angle_id=metadata.angle_id,
            diff_summary=version.diff_summary,
            client_request_id=version.client_request_id,
            created_at=created_at,
        )
        self.db.add(db_version)
        self.db.flush()
        return db_version

    def get_children(self, parent_ids: Iterable[str]) -> List[ImageVersion]:
        """Direct children of any of *parent_ids*, oldest first."""
        ids = list(parent_ids)
        if not ids:
            return []
        return self.db.query(ImageVersion).filter(
            ImageVersion.parent_id.in_(ids)
        ).order_by(ImageVersion.created_at.asc(), ImageVersion.id.asc()).all()

    def get_latest_by_angle(self, angle_id: str) -> Optional[ImageVersion]:
        """Newest version tagged with *angle_id*; id breaks timestamp ties."""
        return self.db.query(ImageVersion).filter(
            ImageVersion.angle_id == angle_id
        ).order_by(ImageVersion.created_at.desc(), ImageVersion.id.desc()).first()

    def get_by_client_request_id(self, client_request_id: str) -> Optional[ImageVersion]:
        return self.db.query(ImageVersion).filter(
            ImageVersion.client_request_id == client_request_id
        ).first()

    def get_by_version_or_image_id(self, identifier: str) -> Optional[ImageVersion]:
        """Match either the version id or the blob store image id."""
        return self.db.query(ImageVersion).filter(
            or_(ImageVersion.id == identifier, ImageVersion.image_id == identifier)
        ).order_by(ImageVersion.created_at.asc()).first()

    def count(self) -> int:
        return self.db.query(ImageVersion).count()
