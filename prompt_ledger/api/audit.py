"""Audit log endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from prompt_ledger.api.models import DeletedResponse, EventPageResponse, EventResponse
from prompt_ledger.core.audit import AuditLog, get_audit_log
from prompt_ledger.core.errors import NotFoundError
from prompt_ledger.core.pagination import build_filters

router = APIRouter()


@router.get("/logs", response_model=EventPageResponse)
async def list_logs(
    entity_type: str | None = None,
    entity_id: str | None = None,
    project_id: str | None = None,
    action_type: str | None = None,
    actor: str | None = None,
    since: str | None = None,
    limit: int | None = None,
    cursor: str | None = None,
    audit: AuditLog = Depends(get_audit_log),
) -> EventPageResponse:
    """Page through the audit log, newest first.

    ``entity_type`` + ``entity_id`` select one entity's history;
    ``project_id`` alone selects the whole project timeline.
    """
    filters = build_filters(
        entity_type=entity_type,
        entity_id=entity_id,
        project_id=project_id,
        action_type=action_type,
        actor=actor,
        since=since,
    )
    page = audit.list(filters, cursor=cursor, limit=limit)
    return EventPageResponse(
        logs=[EventResponse(**e.to_dict()) for e in page.events],
        next_cursor=page.next_cursor,
        has_more=page.has_more,
    )


@router.get("/logs/{event_id}", response_model=EventResponse)
async def get_log(
    event_id: str,
    audit: AuditLog = Depends(get_audit_log),
) -> EventResponse:
    """Get a single audit event."""
    event = audit.get(event_id)
    if event is None:
        raise NotFoundError(f"event {event_id} not found")
    return EventResponse(**event.to_dict())


@router.delete("/logs/{event_id}", response_model=DeletedResponse)
async def delete_log(
    event_id: str,
    audit: AuditLog = Depends(get_audit_log),
) -> DeletedResponse:
    """Administrative purge of one event. Entity state is not touched."""
    audit.delete_entry(event_id)
    return DeletedResponse(deleted=True)
