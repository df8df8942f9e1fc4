"""Main API router, aggregating all endpoint modules."""

from fastapi import APIRouter

from prompt_ledger.api.audit import router as audit_router
from prompt_ledger.api.conversations import router as conversations_router
from prompt_ledger.api.projects import router as projects_router
from prompt_ledger.api.prompts import router as prompts_router
from prompt_ledger.api.restore import router as restore_router
from prompt_ledger.api.snippets import collections_router
from prompt_ledger.api.snippets import router as snippets_router
from prompt_ledger.api.trash import trash_router
from prompt_ledger.db.models import EntityType

api_router = APIRouter()

# Trash routes go first so /deleted wins over /{id}
for entity_type, prefix in (
    (EntityType.PROJECT, "/projects"),
    (EntityType.PROMPT, "/prompts"),
    (EntityType.SNIPPET, "/snippets"),
    (EntityType.SNIPPET_COLLECTION, "/snippet-collections"),
):
    api_router.include_router(trash_router(entity_type), prefix=prefix, tags=["trash"])

api_router.include_router(projects_router, prefix="/projects", tags=["projects"])
api_router.include_router(prompts_router, prefix="/prompts", tags=["prompts"])
api_router.include_router(snippets_router, prefix="/snippets", tags=["snippets"])
api_router.include_router(
    collections_router, prefix="/snippet-collections", tags=["snippet-collections"]
)
api_router.include_router(conversations_router, prefix="/conversations", tags=["conversations"])
api_router.include_router(audit_router, tags=["audit"])
api_router.include_router(restore_router, tags=["restore"])
