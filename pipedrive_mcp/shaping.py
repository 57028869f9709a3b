"""
Response envelopes returned by the read/search tools.

Two shapes:

- a plain envelope (``summary``, ``total_found``, ``filters_applied`` ...) for
  results that went through reliable client-side filtering, even when empty;
- a diagnostic envelope for an EMPTY answer from Pipedrive's own search API,
  which often misses valid records. It says so, lists likely causes and names
  a tool to retry with.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from mcp.server.fastmcp.exceptions import ToolError

from .config import log_error
from .errors import RemoteCallFailure
from .scoring import ScoredResult

DEFAULT_REASONS = [
    "Search term may be too short (try 3+ characters)",
    "Pipedrive search may require exact word matches",
    "Search index may not be fully populated",
]

_PLURALS = {
    "deal": "deals",
    "person": "persons",
    "organization": "organizations",
    "lead": "leads",
    "note": "notes",
    "activity": "activities",
    "item": "items",
}


def plural(kind: str) -> str:
    return _PLURALS.get(kind, kind + "s")


def shape_read_result(kind: str, records: Sequence[Mapping[str, Any]],
                      applied_filters: Sequence[str] = (),
                      limit: Optional[int] = None,
                      summary: Optional[str] = None,
                      **extra) -> Dict[str, Any]:
    name = plural(kind)
    total = len(records)
    if summary is None:
        summary = (f"Found {total} {name} matching filters: {', '.join(applied_filters)}"
                   if applied_filters else f"Found {total} {name}")
    shown = list(records) if limit is None else list(records)[:limit]
    out: Dict[str, Any] = {
        "summary": summary,
        "total_found": total,
        "filters_applied": list(applied_filters),
    }
    out.update(extra)
    if limit is not None and total > limit:
        out["limit_applied"] = limit
    out[name] = shown
    return out


def shape_search_result(kind: str, items: Sequence[Any], term: str, **extra) -> Dict[str, Any]:
    out = {
        "summary": f"Found {len(items)} {plural(kind)}",
        "search_term": term,
    }
    out.update(extra)
    out["items"] = list(items)
    return out


def shape_empty_search_diagnostic(term: str, suggestion: str,
                                  alternatives: Optional[Mapping[str, str]] = None,
                                  reasons: Optional[Iterable[str]] = None,
                                  alternative: Optional[str] = None,
                                  **extra) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "items": [],
        "warning": "No results found using Pipedrive's search API",
        "suggestion": suggestion,
        "search_term": term,
        "possible_reasons": list(reasons if reasons is not None else DEFAULT_REASONS),
    }
    out.update(extra)
    if alternative:
        out["alternative"] = alternative
    if alternatives:
        out["alternatives"] = dict(alternatives)
    return out


def shape_scored_results(results: Sequence[ScoredResult], criteria: List[str],
                         kind: str = "person") -> Dict[str, Any]:
    rows = []
    for item in results:
        r = item.record
        rows.append({
            "id": r.get("id"),
            "name": r.get("name"),
            "email": r.get("email"),
            "phone": r.get("phone"),
            "org_id": r.get("org_id"),
            "org_name": r.get("org_name"),
            "match_score": item.score,
            "match_reasons": list(item.reasons),
        })
    return {
        "summary": f"Found {len(rows)} {plural(kind)} matching search criteria",
        "search_criteria": criteria,
        "total_found": len(rows),
        "results": rows,
    }


def tool_error(operation: str, exc: BaseException, suggestion: Optional[str] = None) -> ToolError:
    """Build the user-visible error for a failed tool call."""
    cause = exc.message if isinstance(exc, RemoteCallFailure) else str(exc)
    log_error(f"── Error {operation}:", repr(exc))
    msg = f"Error {operation}: {cause}"
    if suggestion:
        msg += f". {suggestion}"
    return ToolError(msg)
