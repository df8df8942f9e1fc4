"""Conversation endpoints. Conversations are hard-deleted."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from prompt_ledger.api.models import ConversationCreate, ConversationUpdate, DeletedResponse
from prompt_ledger.core.entities import EntityRegistry, get_entity_registry
from prompt_ledger.db.models import ConversationRow

router = APIRouter()


@router.post("", response_model=ConversationRow, status_code=201)
async def create_conversation(
    data: ConversationCreate,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> ConversationRow:
    return ConversationRow(**registry.conversations.create(data.model_dump()))


@router.get("", response_model=list[ConversationRow])
async def list_conversations(
    project_id: str | None = None,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> list[ConversationRow]:
    conversations = registry.conversations.list(project_id=project_id)
    return [ConversationRow(**c) for c in conversations]


@router.get("/{conversation_id}", response_model=ConversationRow)
async def get_conversation(
    conversation_id: str,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> ConversationRow:
    return ConversationRow(**registry.conversations.require(conversation_id))


@router.patch("/{conversation_id}", response_model=ConversationRow)
async def update_conversation(
    conversation_id: str,
    data: ConversationUpdate,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> ConversationRow:
    conversation = registry.conversations.update(
        conversation_id, data.model_dump(exclude_unset=True)
    )
    return ConversationRow(**conversation)


@router.delete("/{conversation_id}", response_model=DeletedResponse)
async def delete_conversation(
    conversation_id: str,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> DeletedResponse:
    """Delete a conversation. The event log keeps its last state for restore."""
    registry.conversations.delete(conversation_id)
    return DeletedResponse(deleted=True)
