"""Diff and restore endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Body, Depends

from prompt_ledger.api.models import (
    DiffResponse,
    ErrorResponse,
    FieldDiffResponse,
    RestoreConflictResponse,
    RestoreRequest,
    RestoreResponse,
)
from prompt_ledger.core.audit import AuditLog, get_audit_log
from prompt_ledger.core.differ import compute_diff
from prompt_ledger.core.errors import NotFoundError
from prompt_ledger.core.restore import RestoreOrchestrator, get_restorer
from prompt_ledger.utils.timestamps import utc_now

router = APIRouter()


@router.get(
    "/diff/{event_id}",
    response_model=DiffResponse,
    response_model_exclude_unset=True,
)
async def diff_event(
    event_id: str,
    audit: AuditLog = Depends(get_audit_log),
) -> DiffResponse:
    """Field-level diff between an event's before and after snapshots."""
    event = audit.get(event_id)
    if event is None:
        raise NotFoundError(f"event {event_id} not found")
    diffs = compute_diff(event.before_state, event.after_state)
    return DiffResponse(
        event_id=event.id,
        entity_type=event.entity_type,
        entity_id=event.entity_id,
        action_type=event.action_type,
        diffs=[FieldDiffResponse(**d.to_dict()) for d in diffs],
        computed_at=utc_now(),
    )


@router.post(
    "/restore/{event_id}",
    response_model=RestoreResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": RestoreConflictResponse},
    },
)
async def restore_event(
    event_id: str,
    data: RestoreRequest | None = Body(default=None),
    restorer: RestoreOrchestrator = Depends(get_restorer),
) -> RestoreResponse:
    """Restore the entity touched by an event to its before_state.

    A 409 lists the conflicting fields; repeat with ``force: true`` to
    override them.
    """
    force = data.force if data else False
    result = restorer.restore(event_id, force=force)
    return RestoreResponse(**result.to_dict())
