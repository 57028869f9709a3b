"""
Normalization of Pipedrive's dynamic field shapes.

A Pipedrive field comes back in one of three shapes:

    scalar         "Piotr Kowalski", 42
    wrapped        {"value": 42, "name": "Haleon"}         (org_id, person_id, user_id)
    multi-valued   [{"value": "a@b.com", "primary": True, "label": "work"}, ...]

The filter and scoring engines only ever see the uniform form produced here:
a list of values for text matching, a number for id/amount comparisons.
"""

from datetime import date, datetime
from typing import Any, List, Mapping, Optional


def field_values(value: Any) -> List[Any]:
    """Flatten any field shape into a list of raw scalar values."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        out = []
        for entry in value:
            out.extend(field_values(entry))
        return out
    if isinstance(value, Mapping):
        return field_values(value.get("value"))
    return [value]


def text_values(record: Mapping[str, Any], field: str) -> List[str]:
    """All non-empty string forms of ``record[field]``; [] if absent."""
    return [str(v) for v in field_values(record.get(field)) if v is not None and str(v) != ""]


def numeric_value(value: Any) -> Optional[float]:
    """Number behind a raw id/amount or a ``{"value": n}`` wrapper, else None."""
    if isinstance(value, Mapping):
        value = value.get("value")
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def date_value(value: Any) -> Optional[date]:
    """Parse 'YYYY-MM-DD' or 'YYYY-MM-DD HH:MM:SS' (Pipedrive's formats)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        return None
    text = str(value).strip().replace("T", " ")
    try:
        return datetime.strptime(text[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def id_value(record: Mapping[str, Any], field: str) -> Optional[int]:
    """Integer id behind ``record[field]`` in either raw or wrapped form."""
    num = numeric_value(record.get(field))
    return int(num) if num is not None else None
