"""Field-level diffing engine for entity snapshots."""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass
from functools import lru_cache
from typing import Any


class _Undefined:
    """Marks a key that is absent on one side of a diff (as opposed to None)."""

    _instance: _Undefined | None = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> _Undefined:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> _Undefined:
        return self


UNDEFINED = _Undefined()


@dataclass(frozen=True)
class FieldDiff:
    """One top-level field that differs between two snapshots."""

    field: str
    before: Any = UNDEFINED
    after: Any = UNDEFINED

    @property
    def change(self) -> str:
        if self.before is UNDEFINED:
            return "added"
        if self.after is UNDEFINED:
            return "removed"
        return "modified"

    def to_dict(self) -> dict[str, Any]:
        """Wire form: an undefined side is omitted, never rendered as null."""
        data: dict[str, Any] = {"field": self.field, "change": self.change}
        if self.before is not UNDEFINED:
            data["before"] = self.before
        if self.after is not UNDEFINED:
            data["after"] = self.after
        return data


def canonical_json(value: Any) -> str:
    """Serialise with sorted object keys; list order is preserved."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


@lru_cache(maxsize=512)
def _diff_canonical(before_json: str, after_json: str) -> tuple[tuple[str, str | None, str | None], ...]:
    before = json.loads(before_json)
    after = json.loads(after_json)
    changes = []
    for key in sorted(set(before) | set(after)):
        old = canonical_json(before[key]) if key in before else None
        new = canonical_json(after[key]) if key in after else None
        if old != new:
            changes.append((key, old, new))
    return tuple(changes)


def compute_diff(
    before: dict[str, Any] | None,
    after: dict[str, Any] | None,
) -> list[FieldDiff]:
    """Compute the field-level diff between two snapshots.

    Takes the union of top-level keys and reports every key whose canonical
    serialisation differs. None is treated as an empty snapshot. Results are
    memoised on the canonical content; each call gets fresh value objects.
    """
    cached = _diff_canonical(canonical_json(before or {}), canonical_json(after or {}))
    return [
        FieldDiff(
            field=key,
            before=UNDEFINED if old is None else json.loads(old),
            after=UNDEFINED if new is None else json.loads(new),
        )
        for key, old, new in cached
    ]


def changed_fields(before: dict[str, Any] | None, after: dict[str, Any] | None) -> set[str]:
    """Names of the fields that differ between two snapshots."""
    return {d.field for d in compute_diff(before, after)}


def apply_diff(state: dict[str, Any] | None, diffs: list[FieldDiff]) -> dict[str, Any]:
    """Apply diffs as field assignments onto a copy of ``state``."""
    result = copy.deepcopy(state or {})
    for d in diffs:
        if d.after is UNDEFINED:
            result.pop(d.field, None)
        else:
            result[d.field] = copy.deepcopy(d.after)
    return result
