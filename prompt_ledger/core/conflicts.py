"""Conflict detection for restores.

An event's ``after_state`` is what the live entity should still look like if
nothing touched it since. Any divergence means a third party mutated the
entity after that event, and restoring blindly would discard their change.

Two scopes are supported:

- ``full`` compares every field of the after_state and a restore writes the
  whole before_state back. An unrelated change (say, a status flip) blocks a
  title restore.
- ``touched`` compares, and restores, only the fields the event itself
  changed. Unrelated edits made since are left in place.
"""

from __future__ import annotations

from typing import Any, Literal

from prompt_ledger.core.audit import AuditEvent
from prompt_ledger.core.differ import FieldDiff, changed_fields, compute_diff
from prompt_ledger.db.models import ActionType

ConflictScope = Literal["full", "touched"]

# A delete event records no after_state; the entity is expected to match the
# pre-delete snapshot apart from the trash marker.
_DELETE_IGNORED_FIELDS = frozenset({"deleted_at"})

# Bumped by every write, so never evidence of a conflicting edit on its own
_BOOKKEEPING_FIELDS = frozenset({"updated_at"})


class ConflictDetector:
    """Compares an event's expected post-state against live entity state."""

    def __init__(self, scope: ConflictScope = "full") -> None:
        if scope not in ("full", "touched"):
            raise ValueError(f"Unknown conflict scope: {scope}")
        self.scope = scope

    def _expected_state(self, event: AuditEvent) -> tuple[dict[str, Any], frozenset[str]]:
        if event.action_type == ActionType.DELETE.value:
            return dict(event.before_state or {}), _DELETE_IGNORED_FIELDS
        return dict(event.after_state or {}), frozenset()

    def scoped_fields(self, event: AuditEvent) -> set[str] | None:
        """Fields a restore of ``event`` checks and writes; None means all of them.

        Delete events always restore the whole snapshot.
        """
        if self.scope == "full" or event.action_type == ActionType.DELETE.value:
            return None
        return changed_fields(event.before_state, event.after_state) - _BOOKKEEPING_FIELDS

    def detect(self, event: AuditEvent, current_state: dict[str, Any]) -> list[FieldDiff]:
        """Return the fields where ``current_state`` departs from the event's post-state.

        Each FieldDiff has ``before`` = expected value, ``after`` = live value.
        An empty list means nothing changed since the event.
        """
        expected, ignored = self._expected_state(event)
        diffs = [
            d for d in compute_diff(expected, current_state) if d.field not in ignored
        ]

        fields = self.scoped_fields(event)
        if fields is not None:
            diffs = [d for d in diffs if d.field in fields]
        return diffs
