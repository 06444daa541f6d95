"""Prompt session repository for database operations."""

from sqlalchemy import update

from ..models import PromptSession
from ..exceptions import SessionNotFoundError, ConflictError
from .base import BaseRepository


class SessionRepository(BaseRepository[PromptSession]):
    """Repository for prompt sessions."""

    model_class = PromptSession
    not_found_error = SessionNotFoundError

    def create(
        self,
        session_id: str,
        design_intent: str,
        system_instruction: str,
        intent_hash: str,
    ) -> PromptSession:
        db_session = PromptSession(
            id=session_id,
            design_intent=design_intent,
            system_instruction=system_instruction,
            intent_hash=intent_hash,
            history="[]",
            history_revision=0,
        )
        self.db.add(db_session)
        self.db.flush()
        return db_session

    def replace_history(self, session: PromptSession, history_json: str) -> None:
        """Overwrite the stored history if nobody else wrote it since *session* was read.

        Raises:
            ConflictError: The revision moved on under us.
        """
        expected = session.history_revision
        # Push pending ORM changes first so a later flush cannot overwrite this write.
        self.db.flush()
        result = self.db.execute(
            update(PromptSession)
            .where(PromptSession.id == session.id)
            .where(PromptSession.history_revision == expected)
            .values(history=history_json, history_revision=expected + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError(session.id)
        # Keep the in-memory object consistent with what was written.
        self.db.expire(session, ["history", "history_revision"])
