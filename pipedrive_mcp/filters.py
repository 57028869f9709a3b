"""
Client-side filtering of Pipedrive records.

Pipedrive's search endpoints are unreliable for partial matches, so list tools
fetch a full page and narrow it here. A record is kept only if it satisfies
every active predicate; the input order is preserved (callers rely on the
API's own ordering, e.g. most recently active first).
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from .fields import date_value, field_values, numeric_value


class MatchMode(Enum):
    CONTAINS = "contains"    # case-insensitive substring
    EXACT = "exact"          # case-insensitive whole value
    EQUALS = "equals"        # numeric, {"value": n} unwrapped
    AT_LEAST = "at_least"    # numeric >=
    AT_MOST = "at_most"      # numeric <=
    SINCE = "since"          # date on or after


_SYMBOLS = {
    MatchMode.CONTAINS: "contains",
    MatchMode.EXACT: "is",
    MatchMode.EQUALS: "=",
    MatchMode.AT_LEAST: ">=",
    MatchMode.AT_MOST: "<=",
    MatchMode.SINCE: "since",
}


@dataclass(frozen=True)
class FieldPredicate:
    field: str
    value: Any
    mode: MatchMode = MatchMode.CONTAINS
    label: Optional[str] = None
    default: Any = None      # numeric modes: stands in for a missing or unparsable value

    @property
    def active(self) -> bool:
        return self.value is not None and self.value != ""

    def describe(self) -> str:
        name = self.label or self.field
        if self.mode in (MatchMode.CONTAINS, MatchMode.EXACT):
            return f'{name} {_SYMBOLS[self.mode]} "{self.value}"'
        if self.mode is MatchMode.SINCE:
            return f"{name} since {self.value}"
        return f"{name} {_SYMBOLS[self.mode]} {self.value}"

    def matches(self, record: Mapping[str, Any]) -> bool:
        raw = record.get(self.field)
        if raw is None and self.default is None:
            return False

        if self.mode is MatchMode.CONTAINS:
            needle = str(self.value).lower()
            return any(needle in str(v).lower() for v in field_values(raw))
        if self.mode is MatchMode.EXACT:
            needle = str(self.value).strip().lower()
            return any(str(v).strip().lower() == needle for v in field_values(raw))
        if self.mode is MatchMode.SINCE:
            found = date_value(raw)
            since = self.value if isinstance(self.value, date) else date_value(self.value)
            return found is not None and since is not None and found >= since

        target = numeric_value(self.value)
        found = numeric_value(raw)
        if found is None:
            found = numeric_value(self.default)
        if found is None or target is None:
            return False
        if self.mode is MatchMode.EQUALS:
            return found == target
        if self.mode is MatchMode.AT_LEAST:
            return found >= target
        return found <= target


def active_predicates(predicates: Iterable[FieldPredicate]) -> List[FieldPredicate]:
    return [p for p in predicates if p.active]


def filter_records(records: Sequence[Mapping[str, Any]],
                   predicates: Iterable[FieldPredicate]) -> Tuple[List[Mapping[str, Any]], List[str]]:
    """Keep records satisfying ALL active predicates, in input order.

    Returns ``(filtered, applied)`` where ``applied`` describes each active
    predicate, e.g. ``['name contains "piotr"', 'org_id = 5']``.
    """
    active = active_predicates(predicates)
    applied = [p.describe() for p in active]
    if not active:
        return list(records), applied
    kept = [r for r in records if all(p.matches(r) for p in active)]
    return kept, applied
