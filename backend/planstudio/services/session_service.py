"""Session history manager.

A session holds the design intent of one thread plus the last ``history_cap``
conversation turns replayed to the generation model. History is a decaying
working set: trimming it never touches a version.
"""

import json
import logging
from typing import Callable, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from ..core.hashing import fingerprint
from ..exceptions import ConflictError, CorruptPersistedStateError, MissingContextError
from ..models import ImageVersion, PromptSession
from ..repositories import SessionRepository
from ..schemas.session import Turn

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_CAP = 20
# Compare-and-set retries for a history write; each retry is a local re-read.
HISTORY_WRITE_ATTEMPTS = 5


def trim_history(history: Sequence[Turn], cap: int = DEFAULT_HISTORY_CAP) -> List[Turn]:
    """Keep only the newest *cap* turns, in their original order."""
    if len(history) <= cap:
        return list(history)
    return list(history[len(history) - cap:])


def decode_history(session_id: str, raw: Optional[str]) -> List[Turn]:
    """Parse a stored history blob.

    Raises:
        CorruptPersistedStateError: The blob is not a JSON list of turns.
    """
    if not raw:
        return []
    try:
        entries = json.loads(raw)
    except ValueError as e:
        raise CorruptPersistedStateError(session_id, f"invalid JSON: {e}") from e
    if not isinstance(entries, list):
        raise CorruptPersistedStateError(session_id, "history is not a list")
    try:
        return [Turn.model_validate(entry) for entry in entries]
    except PydanticValidationError as e:
        raise CorruptPersistedStateError(session_id, f"malformed turn: {e.error_count()} error(s)") from e


def encode_history(history: Sequence[Turn]) -> str:
    return json.dumps([turn.to_wire() for turn in history])


class SessionService:
    """Resolves, creates and appends to prompt sessions.

    Writes are flushed, not committed; the caller owns the transaction.
    """

    def __init__(
        self,
        db: Session,
        id_factory: Callable[[], str],
        system_instruction: str,
        history_cap: int = DEFAULT_HISTORY_CAP,
    ):
        self.db = db
        self.repo = SessionRepository(db)
        self._new_id = id_factory
        self.system_instruction = system_instruction
        self.history_cap = history_cap

    def create_session(self, design_intent: str) -> PromptSession:
        intent = design_intent or ""
        session = self.repo.create(
            session_id=self._new_id(),
            design_intent=intent,
            system_instruction=self.system_instruction,
            intent_hash=fingerprint(intent),
        )
        logger.info(f"Created session {session.id}", extra={"session_id": session.id})
        return session

    def get_session(self, session_id: str) -> PromptSession:
        """Raises SessionNotFoundError when missing."""
        return self.repo.get_by_id(session_id)

    def resolve_session(
        self,
        previous_version: Optional[ImageVersion] = None,
        explicit_session_id: Optional[str] = None,
        design_intent: Optional[str] = None,
    ) -> PromptSession:
        """Pick the session an edit belongs to; first matching rule wins.

        1. the previous version's session
        2. the explicitly requested session
        3. a new session for the given design intent
        Loading an unknown id raises SessionNotFoundError rather than falling
        through to the next rule.

        Raises:
            MissingContextError: None of the rules apply.
        """
        if previous_version is not None and previous_version.session_id:
            return self.repo.get_by_id(previous_version.session_id)
        if explicit_session_id:
            return self.repo.get_by_id(explicit_session_id)
        if design_intent and design_intent.strip():
            return self.create_session(design_intent)
        raise MissingContextError()

    def load_history(self, session: PromptSession) -> List[Turn]:
        """Stored turns of *session*; an unreadable blob degrades to no history."""
        try:
            return decode_history(session.id, session.history)
        except CorruptPersistedStateError as e:
            logger.warning(
                "Discarding unreadable session history",
                extra={"session_id": session.id, "reason": e.message},
            )
            return []

    def append_turns(self, session: PromptSession, *turns: Turn) -> List[Turn]:
        """Append *turns*, evict the oldest beyond the cap, and store the result.

        A concurrent edit that wrote the history first is not an error: the
        session is re-read and the append is replayed on top of its turns.
        Returns the history as stored.

        Raises:
            ConflictError: The history kept changing for every attempt.
        """
        for attempt in range(1, HISTORY_WRITE_ATTEMPTS + 1):
            current = self.load_history(session)
            updated = current + list(turns)
            trimmed = trim_history(updated, self.history_cap)
            if len(trimmed) < len(updated):
                logger.debug(
                    "Trimmed session history",
                    extra={"session_id": session.id, "evicted": len(updated) - len(trimmed)},
                )
            try:
                self.repo.replace_history(session, encode_history(trimmed))
                return trimmed
            except ConflictError:
                if attempt == HISTORY_WRITE_ATTEMPTS:
                    logger.error(
                        "Giving up on session history write",
                        extra={"session_id": session.id, "attempts": attempt},
                    )
                    raise
                logger.info(
                    "Session history changed concurrently; re-reading",
                    extra={"session_id": session.id, "attempt": attempt},
                )
                self.db.refresh(session, ["history", "history_revision"])
