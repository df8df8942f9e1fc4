"""Error taxonomy for the audit and recovery core.

Every error carries a stable ``code`` and the HTTP status it maps to; the
API layer renders them as ``{"error": code, "detail": message, ...}``.
"""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base class for all domain errors."""

    code = "ledger_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.message}


class NotFoundError(LedgerError):
    """Event or entity is absent or has been purged."""

    code = "not_found"
    status_code = 404


class InvalidStateError(LedgerError):
    """The request is well-formed but not valid for the current state."""

    code = "invalid_state"
    status_code = 400


class InvalidCursorError(InvalidStateError):
    """Cursor was not minted by this server or belongs to another filter set."""

    code = "invalid_cursor"


class StaleEntityError(LedgerError):
    """A compare-and-swap write found the row changed since it was read."""

    code = "stale_entity"
    status_code = 409


class StorageFailureError(LedgerError):
    """Transient backend failure. The transaction was aborted as a whole."""

    code = "storage_failure"
    status_code = 503


class RestoreConflictError(LedgerError):
    """The entity changed after the event being restored."""

    code = "conflict"
    status_code = 409

    def __init__(
        self,
        conflicts: list[Any],
        event_id: str,
        entity_type: str,
        entity_id: str,
    ) -> None:
        super().__init__(
            "Entity has been modified since this event. Send force: true to override."
        )
        self.conflicts = conflicts
        self.event_id = event_id
        self.entity_type = entity_type
        self.entity_id = entity_id

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "conflicts": [c.to_dict() for c in self.conflicts],
            "event_id": self.event_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
        }
