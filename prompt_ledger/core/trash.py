"""Soft-delete lifecycle: trash, restore and purge for primary entities."""

from __future__ import annotations

from typing import Any

import structlog

from prompt_ledger.core.entities import EntityStore
from prompt_ledger.core.errors import InvalidStateError
from prompt_ledger.db.models import ActionType, Actor
from prompt_ledger.utils.timestamps import utc_now

logger = structlog.get_logger()


class TrashManager:
    """Moves one entity type in and out of the trash.

    Trashing never cascades: deleting a project leaves its prompts alone,
    and each of them can be trashed or restored independently.
    """

    def __init__(self, store: EntityStore) -> None:
        if not store.spec.soft_delete:
            raise ValueError(f"{store.spec.label} does not support soft delete")
        self.store = store

    @property
    def label(self) -> str:
        return self.store.spec.label

    def delete(self, entity_id: str, actor: Actor | str = Actor.USER) -> dict[str, Any]:
        """Move an entity to the trash. Trashing a trashed entity is a no-op."""
        current = self.store.require(entity_id)
        if current.get("deleted_at"):
            return current

        new = {**current, "deleted_at": utc_now()}
        entity = self.store.write(
            self.store.mutation("update", current, new, ActionType.DELETE, current, None, actor)
        )
        logger.info("trash.deleted", entity_type=self.store.entity_type.value, id=entity_id)
        return entity

    def list_deleted(self, **filters: Any) -> list[dict[str, Any]]:
        return self.store.list_deleted(**filters)

    def restore(self, entity_id: str, actor: Actor | str = Actor.USER) -> dict[str, Any]:
        """Take an entity out of the trash. Restoring an active entity is a no-op."""
        current = self.store.require(entity_id)
        if not current.get("deleted_at"):
            return current

        new = {**current, "deleted_at": None}
        entity = self.store.write(
            self.store.mutation("update", current, new, ActionType.RESTORED, None, new, actor)
        )
        logger.info("trash.restored", entity_type=self.store.entity_type.value, id=entity_id)
        return entity

    def permanent_delete(self, entity_id: str, actor: Actor | str = Actor.USER) -> None:
        """Erase a trashed entity for good.

        Earlier events stay in the log and keep pointing at the now
        unresolvable id.
        """
        current = self.store.require(entity_id)
        if not current.get("deleted_at"):
            raise InvalidStateError(
                f"{self.label} {entity_id} must be in the trash before permanent deletion"
            )

        self.store.write(
            self.store.mutation(
                "delete",
                current,
                None,
                ActionType.DELETE,
                current,
                None,
                actor,
                extra={"permanent": True},
            )
        )
        logger.info("trash.purged", entity_type=self.store.entity_type.value, id=entity_id)
