"""Timestamp helpers.

All stored timestamps are UTC ISO-8601 strings with a fixed microsecond
precision, so lexical order equals chronological order.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> str:
    """Current UTC time as a fixed-width ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def normalise_timestamp(value: str) -> str:
    """Parse an ISO-8601 string and re-emit it in the stored format.

    Naive values are taken to be UTC. Raises ValueError on garbage.
    """
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).isoformat(timespec="microseconds")
