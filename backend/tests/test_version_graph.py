"""Unit tests for VersionGraph: write-once versions, lineage, and angle lookup.

Tests the service layer directly against the in-memory SQLite database.
"""

from datetime import datetime, timezone

import pytest

from planstudio.core.hashing import fingerprint
from planstudio.exceptions import (
    AngleNotFoundError,
    ImageNotFoundError,
    StorageFailureError,
    ValidationError,
    VersionNotFoundError,
)
from planstudio.schemas.version import VersionCreate, VersionMetadata
from planstudio.services import SessionService, VersionGraph
from tests.conftest import SequentialIds, TickingClock


@pytest.fixture()
def graph(db):
    return VersionGraph(db, SequentialIds("v"), TickingClock())


@pytest.fixture()
def session_id(db):
    svc = SessionService(db, SequentialIds("s"), system_instruction="sys")
    session = svc.create_session("modern kitchen")
    db.commit()
    return session.id


FROZEN_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def frozen_graph(db):
    """Every version gets the same timestamp; ids are handed out out of order."""
    ids = iter(["v-root", "v-b", "v-a"])
    return VersionGraph(db, lambda: next(ids), lambda: FROZEN_TIME)


def _utc(value):
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


_image_counter = iter(range(1, 10_000))


def _create(graph, session_id, parent_id=None, angle_id=None, client_request_id=None, timestamp=None):
    n = next(_image_counter)
    if timestamp is None:
        parent = graph.repo.get_by_id_optional(parent_id) if parent_id else None
        timestamp = graph.creation_time(parent)
    version = VersionCreate(
        parent_id=parent_id,
        session_id=session_id,
        design_intent="modern kitchen",
        edit_instruction=None if parent_id is None else "tweak",
        image_id=f"img-{n}",
        image_url=f"https://images.test/img-{n}/public",
        metadata=VersionMetadata(
            parent_id=parent_id,
            intent_hash=fingerprint("modern kitchen"),
            timestamp=timestamp,
            source="upload" if parent_id is None else "generation",
            model="source" if parent_id is None else "fake-image-model",
            angle_id=angle_id,
        ),
        client_request_id=client_request_id,
    )
    created = graph.create_version(version)
    graph.db.commit()
    return created


class TestCreateAndGet:

    def test_root_version(self, graph, session_id):
        root = _create(graph, session_id)
        fetched = graph.get_version(root.id)
        assert fetched.parent_id is None
        assert fetched.session_id == session_id
        assert fetched.version_metadata["intent_hash"] == fingerprint("modern kitchen")

    def test_child_points_at_parent(self, graph, session_id):
        root = _create(graph, session_id)
        child = _create(graph, session_id, parent_id=root.id)
        assert graph.get_version(child.id).parent_id == root.id

    def test_child_not_created_before_parent(self, graph, session_id):
        root = _create(graph, session_id)
        child = _create(graph, session_id, parent_id=root.id)
        assert child.created_at >= root.created_at

    def test_created_at_matches_metadata_timestamp(self, graph, session_id):
        root = _create(graph, session_id)
        recorded = VersionMetadata.model_validate(root.version_metadata).timestamp
        assert _utc(root.created_at) == _utc(recorded)

    def test_early_timestamp_moved_up_to_parent_in_row_and_metadata(self, graph, session_id):
        root = _create(graph, session_id)
        child = _create(
            graph, session_id, parent_id=root.id, timestamp=datetime(2020, 1, 1, tzinfo=timezone.utc),
        )
        recorded = VersionMetadata.model_validate(child.version_metadata).timestamp
        assert _utc(child.created_at) == _utc(root.created_at)
        assert _utc(recorded) == _utc(root.created_at)

    def test_unknown_parent_rejected(self, graph, session_id):
        with pytest.raises(ValidationError):
            _create(graph, session_id, parent_id="v-missing")
        assert graph.repo.count() == 0

    def test_unknown_version_raises_not_found(self, graph):
        with pytest.raises(VersionNotFoundError):
            graph.get_version("v-nope")

    def test_duplicate_client_request_id_is_storage_failure(self, graph, session_id):
        _create(graph, session_id, client_request_id="req-1")
        with pytest.raises(StorageFailureError):
            _create(graph, session_id, client_request_id="req-1")
        graph.db.rollback()
        assert graph.repo.count() == 1

    def test_metadata_roundtrip_keeps_extensions(self):
        meta = VersionMetadata.model_validate({
            "intent_hash": "abc",
            "timestamp": "2026-01-01T00:00:00+00:00",
            "source": "generation",
            "model": "m",
            "cloudflare_image_id": "img-9",
        })
        assert meta.extensions == {"cloudflare_image_id": "img-9"}
        assert meta.to_blob_metadata()["cloudflare_image_id"] == "img-9"


class TestLineage:

    def test_childless_version_is_its_own_lineage(self, graph, session_id):
        root = _create(graph, session_id)
        assert [(v.id, d) for v, d in graph.lineage(root.id)] == [(root.id, 0)]

    def test_descendants_breadth_first(self, graph, session_id):
        root = _create(graph, session_id)
        a = _create(graph, session_id, parent_id=root.id)
        b = _create(graph, session_id, parent_id=root.id)
        a1 = _create(graph, session_id, parent_id=a.id)
        b1 = _create(graph, session_id, parent_id=b.id)
        a2 = _create(graph, session_id, parent_id=a1.id)

        lineage = [(v.id, d) for v, d in graph.lineage(root.id)]
        assert lineage == [
            (root.id, 0),
            (a.id, 1), (b.id, 1),
            (a1.id, 2), (b1.id, 2),
            (a2.id, 3),
        ]

    def test_depths_strictly_grouped(self, graph, session_id):
        root = _create(graph, session_id)
        a = _create(graph, session_id, parent_id=root.id)
        _create(graph, session_id, parent_id=a.id)
        _create(graph, session_id, parent_id=root.id)
        depths = [d for _, d in graph.lineage(root.id)]
        assert depths == sorted(depths)

    def test_lineage_of_inner_node_excludes_ancestors(self, graph, session_id):
        root = _create(graph, session_id)
        a = _create(graph, session_id, parent_id=root.id)
        a1 = _create(graph, session_id, parent_id=a.id)
        lineage = [v.id for v, _ in graph.lineage(a.id)]
        assert lineage == [a.id, a1.id]
        assert root.id not in lineage

    def test_lineage_of_unknown_version(self, graph):
        with pytest.raises(VersionNotFoundError):
            graph.lineage("v-missing")


class TestLocateLatest:

    def test_returns_newest_tagged(self, graph, session_id):
        root = _create(graph, session_id)
        _create(graph, session_id, parent_id=root.id, angle_id="patio")
        newer = _create(graph, session_id, parent_id=root.id, angle_id="patio")
        _create(graph, session_id, parent_id=root.id, angle_id="north")
        assert graph.locate_latest("patio").id == newer.id

    def test_not_found_even_with_untagged_versions(self, graph, session_id):
        _create(graph, session_id)
        with pytest.raises(AngleNotFoundError):
            graph.locate_latest("patio")


class TestTimestampTies:

    def test_locate_latest_breaks_tie_on_higher_id(self, frozen_graph, session_id):
        root = _create(frozen_graph, session_id)
        first = _create(frozen_graph, session_id, parent_id=root.id, angle_id="patio")
        second = _create(frozen_graph, session_id, parent_id=root.id, angle_id="patio")
        assert first.created_at == second.created_at
        # "v-b" was created first but sorts above "v-a".
        assert frozen_graph.locate_latest("patio").id == "v-b"

    def test_lineage_orders_same_depth_ties_by_id(self, frozen_graph, session_id):
        root = _create(frozen_graph, session_id)
        _create(frozen_graph, session_id, parent_id=root.id)
        _create(frozen_graph, session_id, parent_id=root.id)
        lineage = [(v.id, d) for v, d in frozen_graph.lineage(root.id)]
        assert lineage == [("v-root", 0), ("v-a", 1), ("v-b", 1)]


class TestResolveView:

    def test_by_version_id_and_image_id(self, graph, session_id):
        root = _create(graph, session_id)
        assert graph.resolve_view(root.id).id == root.id
        assert graph.resolve_view(root.image_id).id == root.id

    def test_unknown(self, graph):
        with pytest.raises(ImageNotFoundError):
            graph.resolve_view("nothing")
