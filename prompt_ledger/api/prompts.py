"""Prompt CRUD endpoints, plus reorder and execute."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from prompt_ledger.api.models import ExecuteRequest, PromptCreate, PromptUpdate, ReorderRequest
from prompt_ledger.core.entities import EntityRegistry, get_entity_registry
from prompt_ledger.core.trash import TrashManager
from prompt_ledger.db.models import PromptRow

router = APIRouter()


@router.post("", response_model=PromptRow, status_code=201)
async def create_prompt(
    data: PromptCreate,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> PromptRow:
    """Create a prompt, optionally nested under a parent prompt."""
    prompt = registry.prompts.create(data.model_dump())
    return PromptRow(**prompt)


@router.get("", response_model=list[PromptRow])
async def list_prompts(
    project_id: str,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> list[PromptRow]:
    """List a project's active prompts in display order."""
    return [PromptRow(**p) for p in registry.prompts.list(project_id=project_id)]


@router.post("/reorder", response_model=list[PromptRow])
async def reorder_prompts(
    data: ReorderRequest,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> list[PromptRow]:
    """Set ``order_index`` from the position of each id in ``prompt_ids``."""
    prompts = registry.prompts.reorder(data.project_id, data.prompt_ids)
    return [PromptRow(**p) for p in prompts]


@router.get("/{prompt_id}", response_model=PromptRow)
async def get_prompt(
    prompt_id: str,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> PromptRow:
    return PromptRow(**registry.prompts.require(prompt_id, include_deleted=False))


@router.patch("/{prompt_id}", response_model=PromptRow)
async def update_prompt(
    prompt_id: str,
    data: PromptUpdate,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> PromptRow:
    """Partial update. A status change is recorded as its own event."""
    changes = data.model_dump(exclude_unset=True)
    status = changes.pop("status", None)
    return PromptRow(**registry.prompts.patch(prompt_id, changes, status))


@router.post("/{prompt_id}/execute", response_model=PromptRow)
async def execute_prompt(
    prompt_id: str,
    data: ExecuteRequest,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> PromptRow:
    """Dispatch a ready prompt to an agent."""
    return PromptRow(**registry.prompts.execute(prompt_id, data.agent_id))


@router.delete("/{prompt_id}", response_model=PromptRow)
async def delete_prompt(
    prompt_id: str,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> PromptRow:
    """Move a prompt to the trash. Child prompts are not touched."""
    return PromptRow(**TrashManager(registry.prompts).delete(prompt_id))
