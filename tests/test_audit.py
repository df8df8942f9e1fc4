"""Tests for the event log: appends, paging and cursors."""

from __future__ import annotations

import pytest

from prompt_ledger.core.audit import AuditLog, build_event
from prompt_ledger.core.errors import InvalidCursorError, InvalidStateError, NotFoundError
from prompt_ledger.core.pagination import CursorCodec, EventFilters, Watermark, build_filters
from prompt_ledger.db.client import EVENTS_TABLE
from prompt_ledger.db.models import ActionType, EntityType
from tests.conftest import CURSOR_SECRET


def _append(audit: AuditLog, entity_id: str = "p1", created_at: str | None = None, **kwargs):
    event = build_event(
        entity_type=kwargs.pop("entity_type", EntityType.PROMPT),
        entity_id=entity_id,
        action_type=kwargs.pop("action_type", ActionType.UPDATE),
        before_state={"title": "A"},
        after_state={"title": "B"},
        project_id=kwargs.pop("project_id", "proj1"),
        **kwargs,
    )
    if created_at:
        event["created_at"] = created_at
    return audit.append(event)


def _walk(audit: AuditLog, filters: EventFilters | None = None, limit: int = 3) -> list[str]:
    ids: list[str] = []
    cursor = None
    while True:
        page = audit.list(filters, cursor=cursor, limit=limit)
        ids.extend(e.id for e in page.events)
        if not page.has_more:
            assert page.next_cursor is None
            return ids
        cursor = page.next_cursor


class TestBuildEvent:
    def test_snapshots_are_copied(self):
        before = {"title": "A", "tags": ["x"]}
        event = build_event(EntityType.PROMPT, "p1", ActionType.UPDATE, before, {"title": "B"})
        before["tags"].append("y")
        assert event["metadata"]["before_state"]["tags"] == ["x"]

    def test_create_rejects_before_state(self):
        with pytest.raises(ValueError):
            build_event(EntityType.PROMPT, "p1", ActionType.CREATE, {"title": "A"}, {"title": "A"})

    def test_delete_rejects_after_state(self):
        with pytest.raises(ValueError):
            build_event(EntityType.PROMPT, "p1", ActionType.DELETE, {"title": "A"}, {"title": "A"})

    def test_extra_metadata_kept(self):
        event = build_event(
            EntityType.PROMPT, "p1", ActionType.RESTORED, None, {"title": "A"},
            extra={"restored_from_event": "e1", "forced": False},
        )
        assert event["metadata"]["restored_from_event"] == "e1"
        assert event["metadata"]["before_state"] is None


class TestAppendAndGet:
    def test_append_assigns_seq(self, audit):
        first = _append(audit)
        second = _append(audit)
        assert second.seq > first.seq

    def test_get(self, audit):
        event = _append(audit)
        fetched = audit.get(event.id)
        assert fetched is not None
        assert fetched.after_state == {"title": "B"}
        assert fetched.restorable

    def test_get_missing(self, audit):
        assert audit.get("nope") is None


class TestPaging:
    def test_newest_first(self, audit):
        old = _append(audit, created_at="2026-01-01T00:00:00.000000+00:00")
        new = _append(audit, created_at="2026-01-02T00:00:00.000000+00:00")
        page = audit.list()
        assert [e.id for e in page.events] == [new.id, old.id]
        assert page.has_more is False

    def test_default_page_size(self, audit):
        for _ in range(25):
            _append(audit)
        page = audit.list()
        assert len(page.events) == 20
        assert page.has_more is True

    def test_walk_is_complete_and_duplicate_free(self, audit):
        for i in range(10):
            _append(audit, created_at=f"2026-01-01T00:00:{i:02d}.000000+00:00")
        single = [e.id for e in audit.list(limit=100).events]
        walked = _walk(audit, limit=3)
        assert walked == single
        assert len(set(walked)) == 10

    def test_same_timestamp_tie_broken_by_seq(self, audit):
        ts = "2026-01-01T00:00:00.000000+00:00"
        events = [_append(audit, created_at=ts) for _ in range(5)]
        walked = _walk(audit, limit=2)
        assert walked == [e.id for e in reversed(events)]

    def test_insert_between_pages_does_not_shift(self, audit):
        for i in range(4):
            _append(audit, created_at=f"2026-01-01T00:00:0{i}.000000+00:00")
        first = audit.list(limit=2)
        _append(audit, created_at="2026-01-02T00:00:00.000000+00:00")
        second = audit.list(cursor=first.next_cursor, limit=2)
        seen = [e.id for e in first.events] + [e.id for e in second.events]
        assert len(set(seen)) == 4
        assert second.has_more is False

    def test_entity_filter(self, audit):
        _append(audit, entity_id="p1")
        _append(audit, entity_id="p2")
        filters = build_filters(entity_type="prompt", entity_id="p1")
        page = audit.list(filters)
        assert [e.entity_id for e in page.events] == ["p1"]

    def test_project_timeline(self, audit):
        _append(audit, entity_id="p1", project_id="proj1")
        _append(audit, entity_id="p2", project_id="proj2")
        _append(audit, entity_id="proj1", project_id="proj1", entity_type=EntityType.PROJECT)
        page = audit.list(build_filters(project_id="proj1"))
        assert {e.entity_id for e in page.events} == {"p1", "proj1"}

    def test_since_filter(self, audit):
        _append(audit, created_at="2026-01-01T00:00:00.000000+00:00")
        recent = _append(audit, created_at="2026-03-01T00:00:00.000000+00:00")
        page = audit.list(build_filters(since="2026-02-01T00:00:00Z"))
        assert [e.id for e in page.events] == [recent.id]

    def test_limit_out_of_range(self, audit):
        with pytest.raises(InvalidStateError):
            audit.list(limit=0)
        with pytest.raises(InvalidStateError):
            audit.list(limit=101)


class TestCursors:
    def test_tampered_cursor_rejected(self, audit):
        for _ in range(3):
            _append(audit)
        page = audit.list(limit=1)
        body, _, sig = page.next_cursor.partition(".")
        forged = body[:-2] + ("AA" if body[-2:] != "AA" else "BB") + "." + sig
        with pytest.raises(InvalidCursorError):
            audit.list(cursor=forged, limit=1)

    def test_garbage_cursor_rejected(self, audit):
        with pytest.raises(InvalidCursorError):
            audit.list(cursor="not-a-cursor")

    def test_cursor_from_other_secret_rejected(self, mock_db, audit):
        for _ in range(3):
            _append(audit)
        other = AuditLog(mock_db, CursorCodec("another-secret"))
        cursor = other.list(limit=1).next_cursor
        with pytest.raises(InvalidCursorError):
            audit.list(cursor=cursor, limit=1)

    def test_cursor_bound_to_filters(self, audit):
        for _ in range(3):
            _append(audit, entity_id="p1")
        filters = build_filters(entity_type="prompt", entity_id="p1")
        cursor = audit.list(filters, limit=1).next_cursor
        with pytest.raises(InvalidCursorError):
            audit.list(build_filters(entity_type="prompt", entity_id="p2"), cursor=cursor, limit=1)

    def test_codec_round_trip(self):
        codec = CursorCodec(CURSOR_SECRET)
        filters = EventFilters(project_id="proj1")
        mark = Watermark(created_at="2026-01-01T00:00:00.000000+00:00", seq=7, id="e7")
        assert codec.decode(codec.encode(mark, filters), filters) == mark

    def test_invalid_cursor_is_invalid_state(self):
        assert issubclass(InvalidCursorError, InvalidStateError)


class TestBuildFilters:
    def test_entity_id_requires_type(self):
        with pytest.raises(InvalidStateError):
            build_filters(entity_id="p1")

    def test_unknown_entity_type(self):
        with pytest.raises(InvalidStateError):
            build_filters(entity_type="folder")

    def test_bad_since(self):
        with pytest.raises(InvalidStateError):
            build_filters(since="yesterday")

    def test_since_normalised(self):
        filters = build_filters(since="2026-01-01T00:00:00Z")
        assert filters.since == "2026-01-01T00:00:00.000000+00:00"

    def test_since_excluded_from_equality(self):
        filters = build_filters(project_id="proj1", since="2026-01-01T00:00:00Z")
        assert filters.equality_filters() == {"project_id": "proj1"}


class TestDeleteEntry:
    def test_delete_entry(self, audit, mock_db):
        event = _append(audit)
        audit.delete_entry(event.id)
        assert audit.get(event.id) is None
        assert mock_db.rows(EVENTS_TABLE) == []

    def test_delete_missing(self, audit):
        with pytest.raises(NotFoundError):
            audit.delete_entry("nope")

    def test_delete_leaves_entities(self, registry, audit, mock_db):
        project = registry.projects.create({"name": "Docs"})
        [event] = audit.list().events
        audit.delete_entry(event.id)
        assert registry.projects.get(project["id"]) == project
