"""Database models / type definitions.

These mirror the Supabase tables for type safety in Python code. Entity
rows are built through these models so every stored row (and therefore
every audit snapshot) carries the complete column set.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EntityType(str, Enum):
    PROJECT = "project"
    PROMPT = "prompt"
    CONVERSATION = "conversation"
    SNIPPET = "snippet"
    SNIPPET_COLLECTION = "snippet_collection"


class ActionType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    STATUS_CHANGE = "status_change"
    REORDER = "reorder"
    EXECUTE = "execute"
    RESTORED = "restored"


class Actor(str, Enum):
    USER = "user"
    SYSTEM = "system"
    LLM = "llm"


class PromptStatus(str, Enum):
    DRAFT = "draft"
    READY = "ready"
    SENT = "sent"
    DONE = "done"


class EventRow(BaseModel):
    """Row from the audit_events table."""

    id: str
    seq: int
    project_id: str | None
    entity_type: EntityType
    entity_id: str
    action_type: ActionType
    actor: Actor
    metadata: dict[str, Any]
    created_at: str


class ProjectRow(BaseModel):
    """Row from the projects table."""

    id: str
    name: str
    description: str = ""
    created_at: str
    updated_at: str
    deleted_at: str | None = None


class PromptRow(BaseModel):
    """Row from the prompts table."""

    id: str
    project_id: str
    parent_prompt_id: str | None = None
    title: str
    body: str = ""
    status: PromptStatus = PromptStatus.DRAFT
    order_index: int = 0
    agent_id: str | None = None
    created_at: str
    updated_at: str
    sent_at: str | None = None
    done_at: str | None = None
    deleted_at: str | None = None


class SnippetRow(BaseModel):
    """Row from the snippets table."""

    id: str
    name: str
    content: str = ""
    collection_id: str | None = None
    created_at: str
    updated_at: str
    deleted_at: str | None = None


class SnippetCollectionRow(BaseModel):
    """Row from the snippet_collections table."""

    id: str
    name: str
    description: str = ""
    snippet_ids: list[str] = Field(default_factory=list)
    created_at: str
    updated_at: str
    deleted_at: str | None = None


class ConversationRow(BaseModel):
    """Row from the conversations table."""

    id: str
    project_id: str | None = None
    title: str
    created_at: str
    updated_at: str
