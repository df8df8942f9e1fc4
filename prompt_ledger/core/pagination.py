"""Filter validation and cursor semantics for event log queries.

Cursors are signed ``(created_at, seq, id)`` watermarks bound to the filter
set they were minted for. Pages are selected with a strict "older than the
watermark" predicate, so concurrent inserts never shift rows between pages.
"""

from __future__ import annotations

import hashlib
from dataclasses import asdict, dataclass
from typing import Any

from prompt_ledger.core.errors import InvalidCursorError, InvalidStateError
from prompt_ledger.db.models import ActionType, Actor, EntityType
from prompt_ledger.utils.security import sign_token, validate_id, verify_token
from prompt_ledger.utils.timestamps import normalise_timestamp

CURSOR_VERSION = 1


@dataclass(frozen=True)
class EventFilters:
    """A validated set of event log filters. All set filters are ANDed."""

    entity_type: str | None = None
    entity_id: str | None = None
    project_id: str | None = None
    action_type: str | None = None
    actor: str | None = None
    since: str | None = None

    def equality_filters(self) -> dict[str, Any]:
        """Column equality filters (``since`` is a range and handled apart)."""
        return {
            key: value
            for key, value in asdict(self).items()
            if value is not None and key != "since"
        }

    def fingerprint(self) -> str:
        canonical = "|".join(f"{k}={v}" for k, v in sorted(asdict(self).items()) if v is not None)
        return hashlib.sha256(canonical.encode()).hexdigest()[:16]


@dataclass(frozen=True)
class Watermark:
    """Position of the last row of a page."""

    created_at: str
    seq: int
    id: str


def _enum_value(enum_cls: type, value: str | None, name: str) -> str | None:
    if value is None:
        return None
    try:
        return enum_cls(value).value
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise InvalidStateError(f"{name} must be one of: {allowed}") from None


def build_filters(
    entity_type: str | None = None,
    entity_id: str | None = None,
    project_id: str | None = None,
    action_type: str | None = None,
    actor: str | None = None,
    since: str | None = None,
) -> EventFilters:
    """Validate a filter combination.

    ``entity_id`` is only meaningful together with ``entity_type``;
    ``project_id`` alone selects the whole project timeline.
    """
    if entity_id is not None and entity_type is None:
        raise InvalidStateError("entity_id requires entity_type")
    for name, value in (("entity_id", entity_id), ("project_id", project_id)):
        if value is not None and not validate_id(value):
            raise InvalidStateError(f"{name} is not a valid identifier")

    normalised_since = None
    if since is not None:
        try:
            normalised_since = normalise_timestamp(since)
        except ValueError:
            raise InvalidStateError("since must be an ISO-8601 timestamp") from None

    return EventFilters(
        entity_type=_enum_value(EntityType, entity_type, "entity_type"),
        entity_id=entity_id,
        project_id=project_id,
        action_type=_enum_value(ActionType, action_type, "action_type"),
        actor=_enum_value(Actor, actor, "actor"),
        since=normalised_since,
    )


def resolve_limit(limit: int | None, default: int, maximum: int) -> int:
    """Apply the default page size and reject out-of-range overrides."""
    if limit is None:
        return default
    if limit < 1 or limit > maximum:
        raise InvalidStateError(f"limit must be between 1 and {maximum}")
    return limit


class CursorCodec:
    """Mints and verifies opaque pagination cursors."""

    def __init__(self, secret: str) -> None:
        self._secret = secret

    def encode(self, watermark: Watermark, filters: EventFilters) -> str:
        return sign_token(
            {
                "v": CURSOR_VERSION,
                "ts": watermark.created_at,
                "seq": watermark.seq,
                "id": watermark.id,
                "f": filters.fingerprint(),
            },
            self._secret,
        )

    def decode(self, cursor: str, filters: EventFilters) -> Watermark:
        """Return the watermark, or raise InvalidCursorError.

        A rejected cursor is unrecoverable; the client must restart from the
        first page.
        """
        payload = verify_token(cursor, self._secret)
        if payload is None or payload.get("v") != CURSOR_VERSION:
            raise InvalidCursorError("cursor was not issued by this server; restart from the first page")
        if payload.get("f") != filters.fingerprint():
            raise InvalidCursorError("cursor belongs to a different filter set; restart from the first page")
        try:
            return Watermark(created_at=str(payload["ts"]), seq=int(payload["seq"]), id=str(payload["id"]))
        except (KeyError, TypeError, ValueError):
            raise InvalidCursorError("cursor is malformed; restart from the first page") from None
