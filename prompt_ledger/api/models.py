"""Pydantic request/response models for the API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from prompt_ledger.db.models import ActionType, EntityType, EventRow, PromptStatus


# --- Audit log ---


class EventResponse(EventRow):
    """A single audit event. ``metadata`` carries before_state and after_state."""


class EventPageResponse(BaseModel):
    """One page of the audit log, newest first."""

    logs: list[EventResponse]
    next_cursor: str | None
    has_more: bool


class DeletedResponse(BaseModel):
    deleted: bool


# --- Diff / restore ---


class FieldDiffResponse(BaseModel):
    """A changed field. A side that did not exist is omitted rather than null."""

    field: str
    change: str
    before: Any = None
    after: Any = None


class DiffResponse(BaseModel):
    event_id: str
    entity_type: EntityType
    entity_id: str
    action_type: ActionType
    diffs: list[FieldDiffResponse]
    computed_at: str


class RestoreRequest(BaseModel):
    force: bool = False


class RestoreResponse(BaseModel):
    restored: bool
    entity_type: EntityType
    entity_id: str
    restored_from_event: str
    entity: dict[str, Any]
    forced: bool


class RestoreConflictResponse(BaseModel):
    """Body of a 409 restore response."""

    error: str = "conflict"
    detail: str
    conflicts: list[FieldDiffResponse]
    event_id: str
    entity_type: EntityType
    entity_id: str


class ErrorResponse(BaseModel):
    error: str
    detail: str


# --- Projects ---


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""


class ProjectUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None


# --- Prompts ---


class PromptCreate(BaseModel):
    project_id: str
    title: str = Field(..., min_length=1, max_length=500)
    body: str = ""
    order_index: int = 0
    parent_prompt_id: str | None = None


class PromptUpdate(BaseModel):
    """Partial update. ``parent_prompt_id: null`` moves the prompt to the root."""

    title: str | None = Field(default=None, min_length=1, max_length=500)
    body: str | None = None
    order_index: int | None = None
    parent_prompt_id: str | None = None
    status: PromptStatus | None = None


class ReorderRequest(BaseModel):
    project_id: str
    prompt_ids: list[str] = Field(..., min_length=1)


class ExecuteRequest(BaseModel):
    agent_id: str = Field(..., min_length=1)


# --- Snippets ---


class SnippetCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    content: str = ""
    collection_id: str | None = None


class SnippetUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    content: str | None = None
    collection_id: str | None = None


class SnippetCollectionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""


class SnippetCollectionUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    snippet_ids: list[str] | None = None


# --- Conversations ---


class ConversationCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    project_id: str | None = None


class ConversationUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=500)
