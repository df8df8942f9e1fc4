"""Entity stores: CRUD for projects, prompts, snippets, collections and conversations.

Every mutation is written through ``AuditLog.commit`` together with its
event, and every update is a compare-and-swap against the row that was
read, so two writers racing on one entity can never lose an update.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any
from uuid import uuid4

import structlog
from pydantic import BaseModel, ValidationError

from prompt_ledger.config import get_settings
from prompt_ledger.core.audit import AuditLog, Mutation, build_event, get_audit_log
from prompt_ledger.core.errors import InvalidStateError, NotFoundError
from prompt_ledger.db.client import SupabaseClient, get_supabase_client
from prompt_ledger.db.models import (
    ActionType,
    Actor,
    ConversationRow,
    EntityType,
    ProjectRow,
    PromptRow,
    PromptStatus,
    SnippetCollectionRow,
    SnippetRow,
)
from prompt_ledger.utils.timestamps import utc_now

logger = structlog.get_logger()


@dataclass(frozen=True)
class EntitySpec:
    """Static description of one entity type."""

    entity_type: EntityType
    table: str
    row_model: type[BaseModel]
    label: str
    soft_delete: bool = True


ENTITY_SPECS: dict[EntityType, EntitySpec] = {
    EntityType.PROJECT: EntitySpec(EntityType.PROJECT, "projects", ProjectRow, "project"),
    EntityType.PROMPT: EntitySpec(EntityType.PROMPT, "prompts", PromptRow, "prompt"),
    EntityType.SNIPPET: EntitySpec(EntityType.SNIPPET, "snippets", SnippetRow, "snippet"),
    EntityType.SNIPPET_COLLECTION: EntitySpec(
        EntityType.SNIPPET_COLLECTION, "snippet_collections", SnippetCollectionRow, "snippet collection"
    ),
    EntityType.CONVERSATION: EntitySpec(
        EntityType.CONVERSATION, "conversations", ConversationRow, "conversation", soft_delete=False
    ),
}

# Never overwritten by updates or restores
IMMUTABLE_FIELDS = frozenset({"id", "created_at"})


class EntityStore:
    """Generic audited store for one entity type."""

    spec: EntitySpec
    mutable_fields: frozenset[str] = frozenset()
    order_by: str = "created_at"
    ascending: bool = False

    def __init__(self, db: SupabaseClient, audit: AuditLog) -> None:
        self.db = db
        self.audit = audit

    @property
    def entity_type(self) -> EntityType:
        return self.spec.entity_type

    def project_id_of(self, row: dict[str, Any]) -> str | None:
        """Project the entity's events are filed under."""
        return row.get("project_id")

    def build_row(self, data: dict[str, Any]) -> dict[str, Any]:
        try:
            return self.spec.row_model(**data).model_dump(mode="json")
        except ValidationError as e:
            raise InvalidStateError(f"invalid {self.spec.label}: {e.errors()[0]['msg']}") from e

    # --- reads ---

    def get(self, entity_id: str, include_deleted: bool = True) -> dict[str, Any] | None:
        row = self.db.get(self.spec.table, entity_id)
        if row and not include_deleted and row.get("deleted_at"):
            return None
        return row

    def require(self, entity_id: str, include_deleted: bool = True) -> dict[str, Any]:
        row = self.get(entity_id, include_deleted=include_deleted)
        if not row:
            raise NotFoundError(f"{self.spec.label} {entity_id} not found")
        return row

    def list(self, **filters: Any) -> list[dict[str, Any]]:
        """Active entities; trashed ones only show up in ``list_deleted``."""
        query = {k: v for k, v in filters.items() if v is not None}
        if self.spec.soft_delete:
            query["deleted_at"] = None
        return self.db.select(
            self.spec.table, filters=query, order_by=self.order_by, ascending=self.ascending
        )

    def list_deleted(self, **filters: Any) -> list[dict[str, Any]]:
        """Trashed entities, most recently deleted first."""
        query = {k: v for k, v in filters.items() if v is not None}
        return self.db.select_not_null(self.spec.table, "deleted_at", filters=query)

    # --- writes ---

    def mutation(
        self,
        op: str,
        current: dict[str, Any] | None,
        new: dict[str, Any] | None,
        action: ActionType,
        before_state: dict[str, Any] | None,
        after_state: dict[str, Any] | None,
        actor: Actor | str = Actor.USER,
        extra: dict[str, Any] | None = None,
    ) -> Mutation:
        """Pair an entity write with its event. ``current`` is the CAS guard."""
        row = new or current
        event = build_event(
            entity_type=self.entity_type,
            entity_id=row["id"],
            action_type=action,
            before_state=before_state,
            after_state=after_state,
            project_id=self.project_id_of(row),
            actor=actor,
            extra=extra,
        )
        return Mutation(
            table=self.spec.table,
            op=op,
            entity_id=row["id"],
            event=event,
            values=new,
            expected=current,
        )

    def write(self, mutation: Mutation) -> dict[str, Any] | None:
        """Commit a single audited write and return the stored entity."""
        [result] = self.audit.commit([mutation])
        return result.entity

    def create(self, data: dict[str, Any], actor: Actor | str = Actor.USER) -> dict[str, Any]:
        now = utc_now()
        row = self.build_row({**data, "id": str(uuid4()), "created_at": now, "updated_at": now})
        self.validate(None, row)
        entity = self.write(self.mutation("insert", None, row, ActionType.CREATE, None, row, actor))
        logger.info(f"{self.entity_type.value}.created", id=row["id"])
        return entity

    def validate(self, current: dict[str, Any] | None, new: dict[str, Any]) -> None:
        """Hook for entity-specific rules; raise InvalidStateError to reject."""

    def update(
        self,
        entity_id: str,
        changes: dict[str, Any],
        actor: Actor | str = Actor.USER,
    ) -> dict[str, Any]:
        """Apply field changes. A change set that alters nothing records no event."""
        current = self.require(entity_id)
        mutation = self.update_mutation(current, changes, actor)
        if mutation is None:
            return current
        entity = self.write(mutation)
        logger.info(f"{self.entity_type.value}.updated", id=entity_id, fields=sorted(changes))
        return entity

    def update_mutation(
        self,
        current: dict[str, Any],
        changes: dict[str, Any],
        actor: Actor | str = Actor.USER,
    ) -> Mutation | None:
        """Validated update of ``current``, or None when ``changes`` alter nothing."""
        if current.get("deleted_at"):
            raise InvalidStateError(
                f"{self.spec.label} {current['id']} is in the trash; restore it first"
            )
        unknown = set(changes) - self.mutable_fields
        if unknown:
            raise InvalidStateError(f"fields not updatable: {', '.join(sorted(unknown))}")

        if all(current.get(k) == v for k, v in changes.items()):
            return None

        new = self.build_row({**current, **changes, "updated_at": utc_now()})
        self.validate(current, new)
        return self.mutation("update", current, new, ActionType.UPDATE, current, new, actor)


class ProjectStore(EntityStore):
    spec = ENTITY_SPECS[EntityType.PROJECT]
    mutable_fields = frozenset({"name", "description"})

    def project_id_of(self, row: dict[str, Any]) -> str | None:
        return row["id"]


class PromptStore(EntityStore):
    """Prompts form a tree per project via ``parent_prompt_id``."""

    spec = ENTITY_SPECS[EntityType.PROMPT]
    mutable_fields = frozenset({"title", "body", "order_index", "parent_prompt_id"})
    order_by = "order_index"
    ascending = True

    def __init__(self, db: SupabaseClient, audit: AuditLog, max_tree_depth: int = 64) -> None:
        super().__init__(db, audit)
        self.max_tree_depth = max_tree_depth

    def validate(self, current: dict[str, Any] | None, new: dict[str, Any]) -> None:
        if current is None:
            project = self.db.get(ENTITY_SPECS[EntityType.PROJECT].table, new["project_id"])
            if not project or project.get("deleted_at"):
                raise InvalidStateError(f"project {new['project_id']} not found")
        if current is None or current.get("parent_prompt_id") != new.get("parent_prompt_id"):
            self.check_parent(new, new.get("parent_prompt_id"))

    def check_parent(self, prompt: dict[str, Any], parent_id: str | None) -> None:
        """Reject a parent that lives elsewhere or would close a cycle.

        Walks the ancestor chain over an id → parent_id arena of the
        project's prompts, bounded by ``max_tree_depth``.
        """
        if parent_id is None:
            return
        if parent_id == prompt["id"]:
            raise InvalidStateError("a prompt cannot be its own parent")

        arena = {
            p["id"]: p
            for p in self.db.select(self.spec.table, filters={"project_id": prompt["project_id"]})
        }
        parent = arena.get(parent_id)
        if not parent or parent.get("deleted_at"):
            raise InvalidStateError(f"parent prompt {parent_id} not found in project {prompt['project_id']}")

        current_id: str | None = parent_id
        depth = 0
        while current_id is not None:
            if current_id == prompt["id"]:
                raise InvalidStateError(
                    f"moving prompt {prompt['id']} under {parent_id} would create a cycle"
                )
            depth += 1
            if depth > self.max_tree_depth:
                raise InvalidStateError(f"prompt tree deeper than {self.max_tree_depth} levels")
            node = arena.get(current_id)
            current_id = node.get("parent_prompt_id") if node else None

    @staticmethod
    def parse_status(status: PromptStatus | str) -> PromptStatus:
        try:
            return PromptStatus(status)
        except ValueError:
            allowed = ", ".join(s.value for s in PromptStatus)
            raise InvalidStateError(f"status must be one of: {allowed}") from None

    def status_mutation(
        self,
        current: dict[str, Any],
        status: PromptStatus,
        actor: Actor | str = Actor.USER,
    ) -> Mutation | None:
        if current["status"] == status.value:
            return None

        now = utc_now()
        changes: dict[str, Any] = {"status": status.value, "updated_at": now}
        if status is PromptStatus.SENT:
            changes["sent_at"] = now
        elif status is PromptStatus.DONE:
            changes["done_at"] = now
        new = self.build_row({**current, **changes})
        return self.mutation("update", current, new, ActionType.STATUS_CHANGE, current, new, actor)

    def set_status(
        self, prompt_id: str, status: PromptStatus | str, actor: Actor | str = Actor.USER
    ) -> dict[str, Any]:
        new_status = self.parse_status(status)
        current = self.require(prompt_id, include_deleted=False)
        mutation = self.status_mutation(current, new_status, actor)
        if mutation is None:
            return current
        entity = self.write(mutation)
        logger.info("prompt.status_changed", id=prompt_id, status=new_status.value)
        return entity

    def patch(
        self,
        prompt_id: str,
        changes: dict[str, Any],
        status: PromptStatus | str | None = None,
        actor: Actor | str = Actor.USER,
    ) -> dict[str, Any]:
        """Field changes plus an optional status change, committed together.

        Each part is recorded as its own event. If either part is rejected
        nothing is written.
        """
        new_status = self.parse_status(status) if status is not None else None
        current = self.require(prompt_id)
        if current.get("deleted_at"):
            raise InvalidStateError(f"prompt {prompt_id} is in the trash; restore it first")

        mutations: list[Mutation] = []
        state = current
        if changes:
            update = self.update_mutation(current, changes, actor)
            if update is not None:
                mutations.append(update)
                state = update.values
        if new_status is not None:
            status_change = self.status_mutation(state, new_status, actor)
            if status_change is not None:
                mutations.append(status_change)

        if not mutations:
            return current
        results = self.audit.commit(mutations)
        logger.info(
            "prompt.patched",
            id=prompt_id,
            fields=sorted(changes),
            status=new_status.value if new_status else None,
        )
        return results[-1].entity

    def reorder(
        self, project_id: str, prompt_ids: list[str], actor: Actor | str = Actor.USER
    ) -> list[dict[str, Any]]:
        """Assign ``order_index = position`` to each listed prompt in one transaction."""
        if not prompt_ids:
            raise InvalidStateError("prompt_ids must be a non-empty list")
        if len(set(prompt_ids)) != len(prompt_ids):
            raise InvalidStateError("prompt_ids must not contain duplicates")

        prompts = {p["id"]: p for p in self.list(project_id=project_id)}
        missing = [pid for pid in prompt_ids if pid not in prompts]
        if missing:
            raise InvalidStateError(f"prompt {missing[0]} not found in project {project_id}")

        now = utc_now()
        mutations = []
        for index, pid in enumerate(prompt_ids):
            current = prompts[pid]
            if current["order_index"] == index:
                continue
            new = self.build_row({**current, "order_index": index, "updated_at": now})
            mutations.append(
                self.mutation("update", current, new, ActionType.REORDER, current, new, actor)
            )

        if mutations:
            self.audit.commit(mutations)
        logger.info("prompt.reordered", project_id=project_id, moved=len(mutations))
        return self.list(project_id=project_id)

    def execute(
        self, prompt_id: str, agent_id: str, actor: Actor | str = Actor.USER
    ) -> dict[str, Any]:
        """Mark a ready prompt as dispatched to an agent.

        Delivery to the agent happens downstream, off the broadcast of the
        ``execute`` event.
        """
        if not agent_id:
            raise InvalidStateError("agent_id is required")
        current = self.require(prompt_id, include_deleted=False)
        if current["status"] != PromptStatus.READY.value:
            raise InvalidStateError(
                f'prompt status is "{current["status"]}", must be "{PromptStatus.READY.value}"'
            )

        now = utc_now()
        new = self.build_row(
            {
                **current,
                "status": PromptStatus.SENT.value,
                "agent_id": agent_id,
                "sent_at": now,
                "updated_at": now,
            }
        )
        entity = self.write(
            self.mutation("update", current, new, ActionType.EXECUTE, current, new, actor)
        )
        logger.info("prompt.executed", id=prompt_id, agent_id=agent_id)
        return entity


class SnippetStore(EntityStore):
    spec = ENTITY_SPECS[EntityType.SNIPPET]
    mutable_fields = frozenset({"name", "content", "collection_id"})
    order_by = "updated_at"

    def project_id_of(self, row: dict[str, Any]) -> str | None:
        return None


class SnippetCollectionStore(EntityStore):
    spec = ENTITY_SPECS[EntityType.SNIPPET_COLLECTION]
    mutable_fields = frozenset({"name", "description", "snippet_ids"})

    def project_id_of(self, row: dict[str, Any]) -> str | None:
        return None


class ConversationStore(EntityStore):
    """Conversations are hard-deleted; they have no trash lifecycle."""

    spec = ENTITY_SPECS[EntityType.CONVERSATION]
    mutable_fields = frozenset({"title"})
    order_by = "updated_at"

    def delete(self, conversation_id: str, actor: Actor | str = Actor.USER) -> None:
        current = self.require(conversation_id)
        self.write(self.mutation("delete", current, None, ActionType.DELETE, current, None, actor))
        logger.info("conversation.deleted", id=conversation_id)


class EntityRegistry:
    """Looks up the store responsible for an entity type."""

    def __init__(self, db: SupabaseClient, audit: AuditLog, max_tree_depth: int = 64) -> None:
        self.audit = audit
        self._stores: dict[EntityType, EntityStore] = {
            EntityType.PROJECT: ProjectStore(db, audit),
            EntityType.PROMPT: PromptStore(db, audit, max_tree_depth=max_tree_depth),
            EntityType.SNIPPET: SnippetStore(db, audit),
            EntityType.SNIPPET_COLLECTION: SnippetCollectionStore(db, audit),
            EntityType.CONVERSATION: ConversationStore(db, audit),
        }

    def store(self, entity_type: EntityType | str) -> EntityStore:
        try:
            return self._stores[EntityType(entity_type)]
        except ValueError:
            raise InvalidStateError(f"unknown entity type: {entity_type}") from None

    @property
    def projects(self) -> ProjectStore:
        return self._stores[EntityType.PROJECT]  # type: ignore[return-value]

    @property
    def prompts(self) -> PromptStore:
        return self._stores[EntityType.PROMPT]  # type: ignore[return-value]

    @property
    def snippets(self) -> SnippetStore:
        return self._stores[EntityType.SNIPPET]  # type: ignore[return-value]

    @property
    def snippet_collections(self) -> SnippetCollectionStore:
        return self._stores[EntityType.SNIPPET_COLLECTION]  # type: ignore[return-value]

    @property
    def conversations(self) -> ConversationStore:
        return self._stores[EntityType.CONVERSATION]  # type: ignore[return-value]


@lru_cache
def get_entity_registry() -> EntityRegistry:
    """Get cached entity registry instance."""
    return EntityRegistry(
        get_supabase_client(), get_audit_log(), max_tree_depth=get_settings().max_tree_depth
    )
