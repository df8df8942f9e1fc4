"""Trash endpoints, shared by every soft-deletable entity type."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from prompt_ledger.api.models import DeletedResponse
from prompt_ledger.core.entities import ENTITY_SPECS, EntityRegistry, get_entity_registry
from prompt_ledger.core.trash import TrashManager
from prompt_ledger.db.models import EntityType


def trash_router(entity_type: EntityType) -> APIRouter:
    """Build the ``/deleted``, ``/{id}/restore`` and ``/{id}/permanent-delete`` routes.

    Include it ahead of the entity's own router so ``/deleted`` is not
    captured by ``/{id}``.
    """
    row_model: type[BaseModel] = ENTITY_SPECS[entity_type].row_model
    router = APIRouter()

    def get_trash(registry: EntityRegistry = Depends(get_entity_registry)) -> TrashManager:
        return TrashManager(registry.store(entity_type))

    @router.get("/deleted", response_model=list[row_model])
    async def list_deleted(
        project_id: str | None = None, trash: TrashManager = Depends(get_trash)
    ) -> list[dict[str, Any]]:
        """List trashed entities, most recently deleted first.

        ``project_id`` narrows trashed prompts to one project.
        """
        if entity_type is EntityType.PROMPT:
            return trash.list_deleted(project_id=project_id)
        return trash.list_deleted()

    @router.post("/{entity_id}/restore", response_model=row_model)
    async def restore_from_trash(
        entity_id: str, trash: TrashManager = Depends(get_trash)
    ) -> dict[str, Any]:
        """Take an entity out of the trash."""
        return trash.restore(entity_id)

    @router.post("/{entity_id}/permanent-delete", response_model=DeletedResponse)
    async def permanent_delete(
        entity_id: str, trash: TrashManager = Depends(get_trash)
    ) -> DeletedResponse:
        """Erase a trashed entity. Its audit history is kept."""
        trash.permanent_delete(entity_id)
        return DeletedResponse(deleted=True)

    return router
