"""Shared test fixtures for the planstudio test suite.

Tests run against an in-memory SQLite database shared through a StaticPool.
Tables are dropped and recreated before every test. The generation oracle
and the blob store are replaced by in-process fakes; ids and timestamps come
from deterministic factories.
"""

import base64
import itertools
import os
from datetime import datetime, timedelta, timezone

# Use the in-memory database before any app imports.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_FORMAT"] = "text"
os.environ["ENVIRONMENT"] = "development"

import pytest
from fastapi.testclient import TestClient

from planstudio import models  # noqa: F401
from planstudio.database import Base, SessionLocal, engine, get_db
from planstudio.exceptions import ImageNotFoundError
from planstudio.schemas.session import Part
from planstudio.services import EditOrchestrator, OrchestratorConfig
from planstudio.services.blob_store import FetchedBlob, StoredBlob

GENERATED_BYTES = b"\x89PNG generated"


def image_part(data: bytes = GENERATED_BYTES, mime_type: str = "image/png") -> Part:
    return Part.from_bytes_b64(base64.b64encode(data).decode("ascii"), mime_type)


class FakeOracle:
    """Generation oracle returning queued replies and recording every call."""

    model_name = "fake-image-model"

    def __init__(self):
        self.replies = []
        self.calls = []

    def queue(self, *replies):
        """Queue part lists to return, or exceptions to raise, in order."""
        self.replies.extend(replies)

    def generate(self, turns, system_instruction=None, aspect_ratio=None):
        self.calls.append({
            "turns": list(turns),
            "system_instruction": system_instruction,
            "aspect_ratio": aspect_ratio,
        })
        reply = self.replies.pop(0) if self.replies else [
            Part(text="Adjusted the render."),
            image_part(),
        ]
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeBlobStore:
    """Dict-backed blob store with predictable ids."""

    def __init__(self):
        self.blobs = {}
        self.metadata = {}
        self.fail_next_put = None
        self._counter = itertools.count(1)

    def put(self, data, mime_type, metadata):
        if self.fail_next_put is not None:
            error, self.fail_next_put = self.fail_next_put, None
            raise error
        image_id = f"img-{next(self._counter)}"
        self.blobs[image_id] = (data, mime_type)
        self.metadata[image_id] = metadata
        return StoredBlob(id=image_id, public_url=f"https://images.test/{image_id}/public")

    def get(self, image_id):
        if image_id not in self.blobs:
            raise ImageNotFoundError(image_id)
        data, mime_type = self.blobs[image_id]
        return FetchedBlob(data=data, mime_type=mime_type)


class SequentialIds:
    def __init__(self, prefix: str = "id"):
        self._counter = itertools.count(1)
        self.prefix = prefix

    def __call__(self) -> str:
        return f"{self.prefix}-{next(self._counter):04d}"


class TickingClock:
    """Advances one second per call."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


@pytest.fixture(autouse=True)
def _reset_tables():
    """Recreate all tables before each test for isolation."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def db():
    """Per-test database session."""
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture()
def oracle():
    return FakeOracle()


@pytest.fixture()
def blob_store():
    return FakeBlobStore()


@pytest.fixture()
def config():
    return OrchestratorConfig(
        model_name="fake-image-model",
        system_prompt="Test orchestrator.",
        history_cap=20,
        id_factory=SequentialIds(),
        clock=TickingClock(),
    )


@pytest.fixture()
def orchestrator(db, oracle, blob_store, config):
    return EditOrchestrator(db, oracle=oracle, blob_store=blob_store, config=config)


@pytest.fixture()
def client(db, oracle, blob_store, config):
    """FastAPI TestClient with the database and upstream collaborators overridden."""
    from planstudio.api.deps import get_blob_store, get_oracle, get_orchestrator_config
    from planstudio.main import app

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_oracle] = lambda: oracle
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    app.dependency_overrides[get_orchestrator_config] = lambda: config
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def upload(orchestrator, design_intent="modern kitchen", data=b"source-bytes", **kwargs):
    """Upload helper returning the UploadResponse."""
    return orchestrator.upload(data, mime_type="image/png", design_intent=design_intent, **kwargs)
