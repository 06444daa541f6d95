"""Unit tests for SessionService: resolution precedence, bounded history, recovery."""

import json
import logging
from unittest.mock import patch

import pytest

from planstudio.core.hashing import fingerprint
from planstudio.exceptions import ConflictError, MissingContextError, SessionNotFoundError
from planstudio.database import SessionLocal
from planstudio.models import ImageVersion, PromptSession
from planstudio.schemas.session import Part, Turn
from planstudio.services import SessionService
from planstudio.services.session_service import HISTORY_WRITE_ATTEMPTS, decode_history, trim_history
from tests.conftest import SequentialIds, image_part


@pytest.fixture()
def svc(db):
    return SessionService(db, SequentialIds("s"), system_instruction="sys", history_cap=4)


def _turn(role: str, text: str) -> Turn:
    return Turn(role=role, parts=[Part(text=text)])


class TestCreateSession:

    def test_fields_fixed_at_creation(self, svc, db):
        session = svc.create_session("modern kitchen")
        db.commit()
        stored = svc.get_session(session.id)
        assert stored.design_intent == "modern kitchen"
        assert stored.system_instruction == "sys"
        assert stored.intent_hash == fingerprint("modern kitchen")
        assert stored.history == "[]"


class TestResolveSession:
    """Precedence: previous version's session, explicit id, new from intent, else fail."""

    def test_previous_version_session_wins(self, svc, db):
        first = svc.create_session("first")
        second = svc.create_session("second")
        previous = ImageVersion(id="v-1", session_id=first.id)
        resolved = svc.resolve_session(previous, explicit_session_id=second.id, design_intent="third")
        assert resolved.id == first.id

    def test_explicit_id_used_without_previous(self, svc, db):
        second = svc.create_session("second")
        resolved = svc.resolve_session(None, explicit_session_id=second.id, design_intent="third")
        assert resolved.id == second.id

    def test_previous_without_session_falls_to_explicit(self, svc, db):
        second = svc.create_session("second")
        previous = ImageVersion(id="v-1", session_id=None)
        assert svc.resolve_session(previous, explicit_session_id=second.id).id == second.id

    def test_intent_only_creates_session(self, svc, db):
        resolved = svc.resolve_session(None, None, design_intent="loft conversion")
        assert resolved.design_intent == "loft conversion"
        assert db.query(PromptSession).count() == 1

    def test_nothing_given_fails(self, svc):
        with pytest.raises(MissingContextError):
            svc.resolve_session(None, None, None)

    def test_blank_intent_counts_as_missing(self, svc):
        with pytest.raises(MissingContextError):
            svc.resolve_session(None, None, "   ")

    def test_unknown_explicit_id_does_not_fall_through(self, svc, db):
        with pytest.raises(SessionNotFoundError):
            svc.resolve_session(None, explicit_session_id="s-missing", design_intent="would create")
        assert db.query(PromptSession).count() == 0


class TestAppendTurns:

    def test_append_persists_in_order(self, svc, db):
        session = svc.create_session("intent")
        svc.append_turns(session, _turn("user", "one"), _turn("model", "two"))
        db.commit()
        history = svc.load_history(svc.get_session(session.id))
        assert [t.parts[0].text for t in history] == ["one", "two"]

    def test_cap_evicts_oldest_first(self, svc, db):
        session = svc.create_session("intent")
        for i in range(3):
            svc.append_turns(session, _turn("user", f"u{i}"), _turn("model", f"m{i}"))
        db.commit()
        history = svc.load_history(svc.get_session(session.id))
        assert len(history) == 4
        assert [t.parts[0].text for t in history] == ["u1", "m1", "u2", "m2"]

    def test_inline_data_stored_with_wire_aliases(self, svc, db):
        session = svc.create_session("intent")
        svc.append_turns(session, Turn(role="model", parts=[image_part(b"abc")]))
        db.commit()
        raw = json.loads(svc.get_session(session.id).history)
        assert raw[0]["parts"][0]["inlineData"]["mimeType"] == "image/png"

    def test_revision_bumps_on_each_write(self, svc, db):
        session = svc.create_session("intent")
        svc.append_turns(session, _turn("user", "a"))
        svc.append_turns(session, _turn("user", "b"))
        db.commit()
        assert svc.get_session(session.id).history_revision == 2

    def test_stale_writer_replays_on_top_of_concurrent_write(self, svc, db):
        session = svc.create_session("intent")
        db.commit()
        session = svc.get_session(session.id)  # this request read revision 0

        other_db = SessionLocal()
        try:
            other = SessionService(other_db, SequentialIds("o"), system_instruction="sys", history_cap=4)
            other.append_turns(other.get_session(session.id), _turn("user", "first writer"))
            other_db.commit()
        finally:
            other_db.close()

        stored = svc.append_turns(session, _turn("user", "second writer"))
        db.commit()

        assert [t.parts[0].text for t in stored] == ["first writer", "second writer"]
        db.expire_all()
        reloaded = db.get(PromptSession, session.id)
        assert reloaded.history_revision == 2
        assert [t.parts[0].text for t in svc.load_history(reloaded)] == ["first writer", "second writer"]

    def test_conflict_raised_when_every_attempt_loses(self, svc, db):
        session = svc.create_session("intent")
        db.commit()
        with patch.object(svc.repo, "replace_history", side_effect=ConflictError(session.id)) as write:
            with pytest.raises(ConflictError):
                svc.append_turns(session, _turn("user", "never lands"))
        assert write.call_count == HISTORY_WRITE_ATTEMPTS


class TestCorruptHistory:

    def test_invalid_json_recovers_to_empty(self, svc, db, caplog):
        session = svc.create_session("intent")
        session.history = "{not json"
        with caplog.at_level(logging.WARNING):
            assert svc.load_history(session) == []
        assert "Discarding unreadable session history" in caplog.text

    def test_wrong_shape_recovers_to_empty(self, svc, db):
        session = svc.create_session("intent")
        session.history = json.dumps({"role": "user"})
        assert svc.load_history(session) == []

    def test_append_after_corruption_starts_fresh(self, svc, db):
        session = svc.create_session("intent")
        session.history = json.dumps([{"role": "narrator", "parts": []}])
        svc.append_turns(session, _turn("user", "fresh"))
        db.commit()
        history = svc.load_history(svc.get_session(session.id))
        assert [t.parts[0].text for t in history] == ["fresh"]

    def test_decode_accepts_snake_case(self):
        raw = json.dumps([{"role": "user", "parts": [{"inline_data": {"mime_type": "image/jpeg", "data": "eA=="}}]}])
        turns = decode_history("s-1", raw)
        assert turns[0].parts[0].inline_data.mime_type == "image/jpeg"


class TestTrimHistory:

    def test_under_cap_untouched(self):
        turns = [_turn("user", str(i)) for i in range(3)]
        assert trim_history(turns, 5) == turns

    def test_keeps_most_recent_suffix(self):
        turns = [_turn("user", str(i)) for i in range(25)]
        trimmed = trim_history(turns, 20)
        assert len(trimmed) == 20
        assert trimmed == turns[5:]
