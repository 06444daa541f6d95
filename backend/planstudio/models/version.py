"""Image version model."""

from sqlalchemy import Column, Index, String, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from ..database import Base


class ImageVersion(Base):
    """Write-once record of one uploaded or generated image.

    Rows are only ever inserted. Corrections are new child rows.
    """

    __tablename__ = "image_versions"
    __table_args__ = (
        Index("ix_image_versions_parent", "parent_id"),
        Index("ix_image_versions_session", "session_id"),
        Index("ix_image_versions_angle", "angle_id"),
        Index("ix_image_versions_image", "image_id"),
        Index("ix_image_versions_created_at", "created_at"),
    )

    id = Column(String(64), primary_key=True)

    # Lineage
    parent_id = Column(String(64), ForeignKey("image_versions.id"), nullable=True)
    session_id = Column(String(64), ForeignKey("prompt_sessions.id"), nullable=True)

    # Intent
    design_intent = Column(Text)
    edit_instruction = Column(Text)  # NULL for root uploads
    model = Column(String(100), nullable=False)

    # Blob store artifact
    image_id = Column(String(255), nullable=False)
    image_url = Column(Text, nullable=False)

    # "metadata" is reserved on declarative classes, hence the attribute name
    version_metadata = Column("metadata", JSON, nullable=False, default=dict)
    aspect_ratio = Column(String(10))
    angle_id = Column(String(100))  # copy of version_metadata["angle_id"]
    diff_summary = Column(Text)

    # Exact-match idempotency key supplied by the caller
    client_request_id = Column(String(255), unique=True, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)

    session = relationship("PromptSession", back_populates="versions")
