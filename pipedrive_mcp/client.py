# client.py  –  Pipedrive REST (v1) record source, every call throttled
#
# The only thing in the package that talks HTTP. All requests go through
# a single throttled ``_send`` built from the shared Scheduler at construction.

import json
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .config import Settings, log, log_error
from .errors import RecordNotFound, RemoteCallFailure
from .throttle import Scheduler

ENDPOINTS = {
    "deal":         "deals",
    "person":       "persons",
    "organization": "organizations",
    "activity":     "activities",
    "note":         "notes",
    "lead":         "leads",
    "pipeline":     "pipelines",
    "stage":        "stages",
    "user":         "users",
}

MAX_PAGE = 500          # Pipedrive's hard per-request limit


def endpoint(kind: str) -> str:
    try:
        return ENDPOINTS[kind]
    except KeyError:
        raise ValueError(f"Unknown entity kind '{kind}'. Expected one of: {', '.join(ENDPOINTS)}")

def _error_text(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:1000] or resp.reason_phrase
    if isinstance(body, dict):
        return str(body.get("error") or body.get("error_info") or body)[:1000]
    return str(body)[:1000]


class PipedriveClient:
    def __init__(self, settings: Settings, scheduler: Scheduler,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 http_timeout: float = 30):
        self.settings = settings
        self.scheduler = scheduler
        self.http_timeout = http_timeout
        self._transport = transport
        self._send = scheduler.wrap(self._raw_send)

    # ──────────────────────────────────────────────────────────
    # raw request (throttled via self._send)
    # ──────────────────────────────────────────────────────────
    async def _raw_send(self, method: str, path: str,
                        params: Optional[Dict[str, Any]] = None,
                        body: Optional[Dict[str, Any]] = None,
                        v2: bool = False) -> Dict[str, Any]:
        base = self.settings.base_url_v2 if v2 else self.settings.base_url
        url = f"{base}/{path.lstrip('/')}"
        query = {k: v for k, v in (params or {}).items() if v is not None}
        op = f"{method} /{path.lstrip('/')}"
        log("▶️ ", op, json.dumps(query)[:300], json.dumps(body)[:300] if body else "")
        query["api_token"] = self.settings.api_token

        try:
            async with httpx.AsyncClient(timeout=self.http_timeout, transport=self._transport) as client:
                resp = await client.request(method, url, params=query, json=body)
        except httpx.HTTPError as exc:
            raise RemoteCallFailure(op, str(exc) or exc.__class__.__name__) from exc

        if resp.status_code >= 400:
            log_error("\n── Pipedrive error", resp.status_code, op, "──", resp.text[:1000])
            cls = RecordNotFound if resp.status_code == 404 else RemoteCallFailure
            raise cls(op, _error_text(resp), resp.status_code)

        try:
            payload = resp.json() if resp.content else {}
        except ValueError as exc:
            raise RemoteCallFailure(op, f"invalid JSON in response: {resp.text[:200]}", resp.status_code) from exc
        if isinstance(payload, dict) and payload.get("success") is False:
            raise RemoteCallFailure(op, str(payload.get("error") or "request unsuccessful"), resp.status_code)
        return payload

    # ──────────────────────────────────────────────────────────
    # reads
    # ──────────────────────────────────────────────────────────
    async def fetch_all(self, kind: str, limit: int = 100, **params) -> List[Dict[str, Any]]:
        """One page of ``kind`` records in the API's order (limit capped at 500)."""
        params["limit"] = max(1, min(limit, MAX_PAGE))
        payload = await self._send("GET", endpoint(kind), params=params)
        return payload.get("data") or []

    async def fetch_page(self, kind: str, start: int = 0, limit: int = 100,
                         **params) -> Tuple[List[Dict[str, Any]], bool]:
        """Records from offset ``start`` plus the more-items-in-collection flag."""
        params.update(start=start, limit=max(1, min(limit, MAX_PAGE)))
        payload = await self._send("GET", endpoint(kind), params=params)
        pagination = (payload.get("additional_data") or {}).get("pagination") or {}
        return payload.get("data") or [], pagination.get("more_items_in_collection") is True

    async def fetch_by_id(self, kind: str, record_id: Any) -> Dict[str, Any]:
        payload = await self._send("GET", f"{endpoint(kind)}/{record_id}")
        data = payload.get("data")
        if not data:
            raise RecordNotFound(f"GET /{endpoint(kind)}/{record_id}", f"{kind} {record_id} not found", 404)
        return data

    async def remote_search(self, kind: str, term: str, **params) -> List[Dict[str, Any]]:
        """Pipedrive's own search. Unreliable: may be empty for valid data."""
        params["term"] = term
        payload = await self._send("GET", f"{endpoint(kind)}/search", params=params)
        data = payload.get("data") or {}
        items = data.get("items") if isinstance(data, dict) else data
        return items or []

    async def item_search(self, term: str, item_types: Optional[str] = None) -> List[Dict[str, Any]]:
        payload = await self._send("GET", "itemSearch", params={"term": term, "item_types": item_types})
        data = payload.get("data") or {}
        items = data.get("items") if isinstance(data, dict) else data
        return items or []

    async def fetch_stages(self, pipeline_id: int) -> List[Dict[str, Any]]:
        payload = await self._send("GET", "stages", params={"pipeline_id": pipeline_id})
        data = payload.get("data")
        return data if isinstance(data, list) else []

    # ──────────────────────────────────────────────────────────
    # writes
    # ──────────────────────────────────────────────────────────
    async def create(self, kind: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        resp = await self._send("POST", endpoint(kind), body=payload)
        return resp.get("data") or {}

    async def update(self, kind: str, record_id: Any, payload: Dict[str, Any]) -> Dict[str, Any]:
        method = "PATCH" if kind == "lead" else "PUT"
        resp = await self._send(method, f"{endpoint(kind)}/{record_id}", body=payload)
        return resp.get("data") or {}

    async def delete(self, kind: str, record_id: Any) -> Dict[str, Any]:
        resp = await self._send("DELETE", f"{endpoint(kind)}/{record_id}")
        return resp.get("data") or {}

    async def convert_lead(self, lead_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        resp = await self._send("POST", f"leads/{lead_id}/convert/deal", body=payload, v2=True)
        return resp.get("data") or {}
