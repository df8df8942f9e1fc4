"""Restore Orchestrator: rolls an entity back to the state before an event."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import structlog

from prompt_ledger.config import get_settings
from prompt_ledger.core.audit import AuditEvent, AuditLog, get_audit_log
from prompt_ledger.core.conflicts import ConflictDetector
from prompt_ledger.core.entities import (
    IMMUTABLE_FIELDS,
    EntityRegistry,
    EntityStore,
    get_entity_registry,
)
from prompt_ledger.core.errors import (
    InvalidStateError,
    NotFoundError,
    RestoreConflictError,
    StaleEntityError,
)
from prompt_ledger.db.models import ActionType, Actor

logger = structlog.get_logger()


@dataclass
class RestoreResult:
    """Outcome of a successful restore."""

    restored: bool
    entity_type: str
    entity_id: str
    restored_from_event: str
    entity: dict[str, Any]
    forced: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "restored": self.restored,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "restored_from_event": self.restored_from_event,
            "entity": self.entity,
            "forced": self.forced,
        }


class RestoreOrchestrator:
    """Applies an event's before_state back onto its entity.

    The sequence is load event → load entity → detect conflicts → write the
    entity and a ``restored`` event in one transaction. The write is a
    compare-and-swap against the entity state the conflict check saw; if
    another writer got in between, the state is reloaded and checked again.
    """

    def __init__(
        self,
        audit: AuditLog,
        registry: EntityRegistry,
        detector: ConflictDetector | None = None,
        max_attempts: int = 3,
    ) -> None:
        self.audit = audit
        self.registry = registry
        self.detector = detector or ConflictDetector()
        self.max_attempts = max_attempts

    def _load_event(self, event_id: str) -> AuditEvent:
        event = self.audit.get(event_id)
        if event is None:
            raise NotFoundError(f"event {event_id} not found")
        if not event.restorable:
            raise InvalidStateError(f"event {event_id} has no before_state to restore")
        return event

    def _restored_state(
        self, store: EntityStore, event: AuditEvent, current: dict[str, Any]
    ) -> dict[str, Any]:
        state = dict(current)
        fields = self.detector.scoped_fields(event)
        for key, value in (event.before_state or {}).items():
            if key in IMMUTABLE_FIELDS or (fields is not None and key not in fields):
                continue
            state[key] = copy.deepcopy(value)
        if event.action_type == ActionType.DELETE.value:
            state["deleted_at"] = None
        return store.build_row(state)

    def restore(
        self,
        event_id: str,
        force: bool = False,
        actor: Actor | str = Actor.USER,
    ) -> RestoreResult:
        """Restore the entity touched by ``event_id`` to its before_state.

        Raises NotFoundError, InvalidStateError or RestoreConflictError; on
        conflict nothing is written. A restore that would change nothing
        records no event.
        """
        event = self._load_event(event_id)
        store = self.registry.store(event.entity_type)

        for attempt in range(1, self.max_attempts + 1):
            current = store.get(event.entity_id)
            if current is None:
                raise NotFoundError(
                    f"{store.spec.label} {event.entity_id} has been permanently deleted and cannot be restored"
                )

            if not force:
                conflicts = self.detector.detect(event, current)
                if conflicts:
                    logger.info(
                        "restore.conflict",
                        event_id=event_id,
                        entity_type=event.entity_type,
                        entity_id=event.entity_id,
                        fields=[c.field for c in conflicts],
                    )
                    raise RestoreConflictError(
                        conflicts, event.id, event.entity_type, event.entity_id
                    )

            restored = self._restored_state(store, event, current)
            if restored == current:
                logger.info("restore.noop", event_id=event_id, entity_id=event.entity_id)
                return RestoreResult(
                    restored=True,
                    entity_type=event.entity_type,
                    entity_id=event.entity_id,
                    restored_from_event=event.id,
                    entity=current,
                    forced=force,
                )
            # The rolled-back row must satisfy the same rules as a direct update
            store.validate(current, restored)

            mutation = store.mutation(
                "update",
                current,
                restored,
                ActionType.RESTORED,
                None,
                restored,
                actor,
                extra={"restored_from_event": event.id, "forced": force},
            )
            try:
                entity = store.write(mutation)
            except StaleEntityError:
                logger.warning(
                    "restore.stale_retry",
                    event_id=event_id,
                    entity_id=event.entity_id,
                    attempt=attempt,
                )
                continue

            logger.info(
                "restore.applied",
                event_id=event_id,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                forced=force,
            )
            return RestoreResult(
                restored=True,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                restored_from_event=event.id,
                entity=entity,
                forced=force,
            )

        raise StaleEntityError(
            f"{store.spec.label} {event.entity_id} kept changing during restore; try again"
        )


@lru_cache
def get_restorer() -> RestoreOrchestrator:
    """Get cached restore orchestrator instance."""
    settings = get_settings()
    return RestoreOrchestrator(
        get_audit_log(),
        get_entity_registry(),
        ConflictDetector(settings.conflict_scope),
        max_attempts=settings.restore_max_attempts,
    )
