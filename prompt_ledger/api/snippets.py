"""Snippet and snippet collection endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from prompt_ledger.api.models import (
    SnippetCollectionCreate,
    SnippetCollectionUpdate,
    SnippetCreate,
    SnippetUpdate,
)
from prompt_ledger.core.entities import EntityRegistry, get_entity_registry
from prompt_ledger.core.trash import TrashManager
from prompt_ledger.db.models import SnippetCollectionRow, SnippetRow

router = APIRouter()
collections_router = APIRouter()


@router.post("", response_model=SnippetRow, status_code=201)
async def create_snippet(
    data: SnippetCreate,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> SnippetRow:
    return SnippetRow(**registry.snippets.create(data.model_dump()))


@router.get("", response_model=list[SnippetRow])
async def list_snippets(
    collection_id: str | None = None,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> list[SnippetRow]:
    """List active snippets, most recently updated first."""
    return [SnippetRow(**s) for s in registry.snippets.list(collection_id=collection_id)]


@router.get("/{snippet_id}", response_model=SnippetRow)
async def get_snippet(
    snippet_id: str,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> SnippetRow:
    return SnippetRow(**registry.snippets.require(snippet_id, include_deleted=False))


@router.patch("/{snippet_id}", response_model=SnippetRow)
async def update_snippet(
    snippet_id: str,
    data: SnippetUpdate,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> SnippetRow:
    snippet = registry.snippets.update(snippet_id, data.model_dump(exclude_unset=True))
    return SnippetRow(**snippet)


@router.delete("/{snippet_id}", response_model=SnippetRow)
async def delete_snippet(
    snippet_id: str,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> SnippetRow:
    return SnippetRow(**TrashManager(registry.snippets).delete(snippet_id))


@collections_router.post("", response_model=SnippetCollectionRow, status_code=201)
async def create_collection(
    data: SnippetCollectionCreate,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> SnippetCollectionRow:
    return SnippetCollectionRow(**registry.snippet_collections.create(data.model_dump()))


@collections_router.get("", response_model=list[SnippetCollectionRow])
async def list_collections(
    registry: EntityRegistry = Depends(get_entity_registry),
) -> list[SnippetCollectionRow]:
    return [SnippetCollectionRow(**c) for c in registry.snippet_collections.list()]


@collections_router.get("/{collection_id}", response_model=SnippetCollectionRow)
async def get_collection(
    collection_id: str,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> SnippetCollectionRow:
    collection = registry.snippet_collections.require(collection_id, include_deleted=False)
    return SnippetCollectionRow(**collection)


@collections_router.patch("/{collection_id}", response_model=SnippetCollectionRow)
async def update_collection(
    collection_id: str,
    data: SnippetCollectionUpdate,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> SnippetCollectionRow:
    """Rename a collection or replace its snippet membership list."""
    collection = registry.snippet_collections.update(
        collection_id, data.model_dump(exclude_unset=True)
    )
    return SnippetCollectionRow(**collection)


@collections_router.delete("/{collection_id}", response_model=SnippetCollectionRow)
async def delete_collection(
    collection_id: str,
    registry: EntityRegistry = Depends(get_entity_registry),
) -> SnippetCollectionRow:
    """Move a collection to the trash. Member snippets stay active."""
    return SnippetCollectionRow(**TrashManager(registry.snippet_collections).delete(collection_id))
