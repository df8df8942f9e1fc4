"""Project CRUD endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from prompt_ledger.api.models import ProjectCreate, ProjectUpdate
from prompt_ledger.core.entities import EntityRegistry, get_entity_registry
from prompt_ledger.core.trash import TrashManager
from prompt_ledger.db.models import ProjectRow

router = APIRouter()


@router.post("", response_model=ProjectRow, status_code=201)
async def create_project(
    data: ProjectCreate,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> ProjectRow:
    project = registry.projects.create(data.model_dump())
    return ProjectRow(**project)


@router.get("", response_model=list[ProjectRow])
async def list_projects(
    registry: EntityRegistry = Depends(get_entity_registry),
) -> list[ProjectRow]:
    """List active projects, newest first."""
    return [ProjectRow(**p) for p in registry.projects.list()]


@router.get("/{project_id}", response_model=ProjectRow)
async def get_project(
    project_id: str,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> ProjectRow:
    return ProjectRow(**registry.projects.require(project_id, include_deleted=False))


@router.patch("/{project_id}", response_model=ProjectRow)
async def update_project(
    project_id: str,
    data: ProjectUpdate,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> ProjectRow:
    project = registry.projects.update(project_id, data.model_dump(exclude_unset=True))
    return ProjectRow(**project)


@router.delete("/{project_id}", response_model=ProjectRow)
async def delete_project(
    project_id: str,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> ProjectRow:
    """Move a project to the trash. Its prompts are left as they are."""
    return ProjectRow(**TrashManager(registry.projects).delete(project_id))
