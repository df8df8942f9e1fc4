"""Event Log: append-only audit trail of every entity mutation."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from functools import lru_cache
from typing import Any
from uuid import uuid4

import structlog

from prompt_ledger.config import get_settings
from prompt_ledger.core.errors import NotFoundError
from prompt_ledger.core.events import publish_event_sync
from prompt_ledger.core.pagination import CursorCodec, EventFilters, Watermark, resolve_limit
from prompt_ledger.db.client import EVENTS_TABLE, SupabaseClient, get_supabase_client
from prompt_ledger.db.models import ActionType, Actor, EntityType
from prompt_ledger.utils.timestamps import utc_now

logger = structlog.get_logger()


@dataclass
class AuditEvent:
    """An immutable audit log entry."""

    id: str
    seq: int
    project_id: str | None
    entity_type: str
    entity_id: str
    action_type: str
    actor: str
    metadata: dict[str, Any]
    created_at: str

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> AuditEvent:
        return cls(
            id=row["id"],
            seq=row["seq"],
            project_id=row.get("project_id"),
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            action_type=row["action_type"],
            actor=row["actor"],
            metadata=row.get("metadata") or {},
            created_at=row["created_at"],
        )

    @property
    def before_state(self) -> dict[str, Any] | None:
        return self.metadata.get("before_state")

    @property
    def after_state(self) -> dict[str, Any] | None:
        return self.metadata.get("after_state")

    @property
    def restorable(self) -> bool:
        return bool(self.before_state)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "seq": self.seq,
            "project_id": self.project_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action_type": self.action_type,
            "actor": self.actor,
            "metadata": self.metadata,
            "created_at": self.created_at,
        }


@dataclass
class EventPage:
    """One page of events, newest first."""

    events: list[AuditEvent]
    next_cursor: str | None
    has_more: bool


@dataclass
class Mutation:
    """An entity write paired with the event that records it."""

    table: str
    op: str  # insert | update | delete
    entity_id: str
    event: dict[str, Any]
    values: dict[str, Any] | None = None
    expected: dict[str, Any] | None = None

    def to_op(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "op": self.op,
            "id": self.entity_id,
            "values": self.values,
            "expected": self.expected,
            "event": self.event,
        }


@dataclass
class CommitResult:
    entity: dict[str, Any] | None
    event: AuditEvent


def build_event(
    entity_type: EntityType | str,
    entity_id: str,
    action_type: ActionType | str,
    before_state: dict[str, Any] | None,
    after_state: dict[str, Any] | None,
    project_id: str | None = None,
    actor: Actor | str = Actor.USER,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build an event row (without ``seq``, which the store assigns).

    Snapshots are deep-copied so later changes to the caller's dicts cannot
    leak into the log.
    """
    action = ActionType(action_type)
    if action in (ActionType.CREATE, ActionType.RESTORED) and before_state is not None:
        raise ValueError(f"{action.value} events must not carry a before_state")
    if action is ActionType.DELETE and after_state is not None:
        raise ValueError("delete events must not carry an after_state")

    metadata: dict[str, Any] = dict(extra or {})
    metadata["before_state"] = copy.deepcopy(before_state)
    metadata["after_state"] = copy.deepcopy(after_state)
    return {
        "id": str(uuid4()),
        "project_id": project_id,
        "entity_type": EntityType(entity_type).value,
        "entity_id": entity_id,
        "action_type": action.value,
        "actor": Actor(actor).value,
        "metadata": metadata,
        "created_at": utc_now(),
    }


class AuditLog:
    """Appends, pages through and purges audit events."""

    def __init__(
        self,
        db: SupabaseClient,
        cursor_codec: CursorCodec | None = None,
        default_page_size: int = 20,
        max_page_size: int = 100,
    ) -> None:
        self.db = db
        self.cursors = cursor_codec or CursorCodec(get_settings().cursor_secret)
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    def append(self, event: dict[str, Any]) -> AuditEvent:
        """Append a standalone event that has no entity write attached."""
        row = self.db.insert(EVENTS_TABLE, event)
        logged = AuditEvent.from_row(row)
        logger.info(
            "audit.appended",
            event_id=logged.id,
            entity_type=logged.entity_type,
            action_type=logged.action_type,
        )
        publish_event_sync(logged.to_dict())
        return logged

    def commit(self, mutations: list[Mutation]) -> list[CommitResult]:
        """Apply entity writes and their events in one transaction.

        Either every write and every event is stored, or none is.
        """
        rows = self.db.apply_mutations([m.to_op() for m in mutations])
        results = [
            CommitResult(entity=row.get("entity"), event=AuditEvent.from_row(row["event"]))
            for row in rows
        ]
        for result in results:
            logger.info(
                "audit.committed",
                event_id=result.event.id,
                entity_type=result.event.entity_type,
                entity_id=result.event.entity_id,
                action_type=result.event.action_type,
                actor=result.event.actor,
            )
            publish_event_sync(result.event.to_dict())
        return results

    def get(self, event_id: str) -> AuditEvent | None:
        """Get a single event by ID."""
        row = self.db.get(EVENTS_TABLE, event_id)
        return AuditEvent.from_row(row) if row else None

    def list(
        self,
        filters: EventFilters | None = None,
        cursor: str | None = None,
        limit: int | None = None,
    ) -> EventPage:
        """Page through events newest first.

        Ordering is ``(created_at, seq)`` descending; ``cursor`` continues
        strictly after the last row of the previous page.
        """
        filters = filters or EventFilters()
        page_size = resolve_limit(limit, self.default_page_size, self.max_page_size)
        before = None
        if cursor:
            mark = self.cursors.decode(cursor, filters)
            before = (mark.created_at, mark.seq)

        rows = self.db.select_page(
            EVENTS_TABLE,
            filters=filters.equality_filters(),
            since=filters.since,
            before=before,
            limit=page_size + 1,
        )
        has_more = len(rows) > page_size
        events = [AuditEvent.from_row(r) for r in rows[:page_size]]

        next_cursor = None
        if has_more:
            last = events[-1]
            next_cursor = self.cursors.encode(
                Watermark(created_at=last.created_at, seq=last.seq, id=last.id), filters
            )
        return EventPage(events=events, next_cursor=next_cursor, has_more=has_more)

    def delete_entry(self, event_id: str) -> None:
        """Administrative purge of a single event. Entity state is untouched."""
        if not self.db.delete(EVENTS_TABLE, event_id):
            raise NotFoundError(f"event {event_id} not found")
        logger.info("audit.entry_deleted", event_id=event_id)


@lru_cache
def get_audit_log() -> AuditLog:
    """Get cached audit log instance."""
    settings = get_settings()
    return AuditLog(
        get_supabase_client(),
        CursorCodec(settings.cursor_secret),
        default_page_size=settings.default_page_size,
        max_page_size=settings.max_page_size,
    )
