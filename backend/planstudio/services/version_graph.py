"""Version graph service: append-only forest of image versions.

Each version points at the version it was derived from; uploads are roots.
Lineage queries walk *down* from the queried node (its descendant subtree),
breadth-first, never up towards the root.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..exceptions import (
    AngleNotFoundError,
    ImageNotFoundError,
    StorageFailureError,
    ValidationError,
)
from ..models import ImageVersion
from ..repositories import VersionRepository
from ..schemas.version import VersionCreate

logger = logging.getLogger(__name__)


class VersionGraph:
    """Create and query versions. Never updates or deletes one."""

    def __init__(self, db: Session, id_factory: Callable[[], str], clock: Callable[[], datetime]):
        self.db = db
        self.repo = VersionRepository(db)
        self._new_id = id_factory
        self._now = clock

    def creation_time(self, parent: Optional[ImageVersion] = None) -> datetime:
        """Timestamp for a new version: now, but never earlier than *parent*."""
        now = _aware(self._now())
        if parent is not None and parent.created_at is not None:
            parent_time = _aware(parent.created_at)
            if now < parent_time:
                return parent_time
        return now

    def create_version(self, version: VersionCreate) -> ImageVersion:
        """Insert a version whose parent (if any) already exists.

        The row's ``created_at`` is ``version.metadata.timestamp``, moved up to
        the parent's when it would sort before it, so the metadata and the row
        always agree. The row is flushed, not committed; the caller owns the
        transaction.

        Raises:
            ValidationError: Missing session or unknown parent.
            StorageFailureError: The database rejected the write.
        """
        if not version.session_id:
            raise ValidationError("session_id is required", field="session_id")

        created_at = _aware(version.metadata.timestamp)
        if version.parent_id is not None:
            parent = self.repo.get_by_id_optional(version.parent_id)
            if parent is None:
                raise ValidationError(
                    f"parent_id references unknown version: {version.parent_id}",
                    field="parent_id",
                )
            if parent.created_at is not None and created_at < _aware(parent.created_at):
                created_at = _aware(parent.created_at)
        if created_at != version.metadata.timestamp:
            version = version.model_copy(update={
                "metadata": version.metadata.model_copy(update={"timestamp": created_at}),
            })

        version_id = self._new_id()
        try:
            db_version = self.repo.create(version_id, version, created_at)
        except SQLAlchemyError as e:
            logger.error(
                "Version write failed",
                extra={"version_id": version_id, "parent_id": version.parent_id},
            )
            raise StorageFailureError("Failed to store version", original_error=e) from e

        logger.info(
            f"Created version {version_id}",
            extra={
                "version_id": version_id,
                "parent_id": version.parent_id,
                "session_id": version.session_id,
                "angle_id": version.metadata.angle_id,
            },
        )
        return db_version

    def get_version(self, version_id: str) -> ImageVersion:
        """Raises VersionNotFoundError when missing."""
        return self.repo.get_by_id(version_id)

    def lineage(self, version_id: str) -> List[Tuple[ImageVersion, int]]:
        """Descendant subtree of *version_id* as ``(version, depth)`` pairs.

        The queried node comes first at depth 0, then each deeper level in
        creation order. A childless version yields just itself.
        """
        root = self.repo.get_by_id(version_id)
        result: List[Tuple[ImageVersion, int]] = [(root, 0)]
        seen = {root.id}
        frontier = [root.id]
        depth = 0

        while frontier:
            depth += 1
            children = [c for c in self.repo.get_children(frontier) if c.id not in seen]
            for child in children:
                seen.add(child.id)
                result.append((child, depth))
            frontier = [c.id for c in children]

        return result

    def locate_latest(self, angle_id: str) -> ImageVersion:
        """Newest version tagged *angle_id*. Raises AngleNotFoundError when none is."""
        version = self.repo.get_latest_by_angle(angle_id)
        if version is None:
            raise AngleNotFoundError(angle_id)
        return version

    def find_replay(self, client_request_id: str) -> Optional[ImageVersion]:
        """Version previously created for this client request id, if any."""
        return self.repo.get_by_client_request_id(client_request_id)

    def resolve_view(self, identifier: str) -> ImageVersion:
        """Version matching a version id or a stored image id."""
        version = self.repo.get_by_version_or_image_id(identifier)
        if version is None:
            raise ImageNotFoundError(identifier)
        return version


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
