"""Prompt session model."""

from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base


class PromptSession(Base):
    """One design thread: fixed intent plus a bounded conversation log."""

    __tablename__ = "prompt_sessions"

    id = Column(String(64), primary_key=True)

    # Fixed at creation
    design_intent = Column(Text, nullable=False, default="")
    system_instruction = Column(Text, nullable=False)
    intent_hash = Column(String(64), nullable=False)  # SHA256 of design_intent

    # Serialized list of turns, replaced wholesale on every append
    history = Column(Text, nullable=False, default="[]")
    # Bumped on every history write; guards against lost updates
    history_revision = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    versions = relationship("ImageVersion", back_populates="session")
