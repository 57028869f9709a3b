"""Shared fixtures: sample Pipedrive records and a client backed by httpx.MockTransport."""

import json

import httpx
import pytest

from pipedrive_mcp.client import PipedriveClient
from pipedrive_mcp.config import Settings
from pipedrive_mcp.throttle import Scheduler


@pytest.fixture
def persons():
    return [
        {
            "id": 1,
            "name": "Piotr Kowalski",
            "org_name": "Haleon",
            "org_id": {"value": 77, "name": "Haleon"},
            "email": [{"value": "piotr@haleon.com", "primary": True, "label": "work"}],
            "phone": [{"value": "+48 600 100 200", "primary": True, "label": "mobile"}],
        },
        {
            "id": 2,
            "name": "Jan Nowak",
            "org_name": "Other Co",
            "org_id": 12,
        },
        {
            "id": 3,
            "name": "Anna Piotrowska",
            "org_name": "Haleon Poland",
            "org_id": {"value": 78, "name": "Haleon Poland"},
            "email": [
                {"value": "anna@other.io", "primary": False},
                {"value": "anna.p@haleon.com", "primary": True},
            ],
        },
        {"id": 4, "name": "No Org Person"},
    ]


@pytest.fixture
def settings():
    return Settings(api_token="test-token", domain="acme.pipedrive.com",
                    min_time_ms=0, max_concurrent=2, call_timeout_s=None)


class Recorder:
    """Routes requests by (method, path suffix) and records what was sent."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.split("/api/v1/", 1)[-1].split("/api/v2/", 1)[-1]
        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, json={"success": False, "error": f"no route {request.method} {path}"})
        if callable(route):
            return route(request)
        status, body = route if isinstance(route, tuple) else (200, route)
        return httpx.Response(status, json=body)

    def params(self, i=-1):
        return dict(self.requests[i].url.params)

    def body(self, i=-1):
        return json.loads(self.requests[i].content or b"{}")


@pytest.fixture
def make_client(settings):
    def _make(routes):
        recorder = Recorder(routes)
        client = PipedriveClient(settings, Scheduler.from_settings(settings),
                                 transport=httpx.MockTransport(recorder))
        return client, recorder
    return _make
