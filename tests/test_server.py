"""Tests for server wiring and configuration (pipedrive_mcp/server.py, config.py)."""

import pytest

from pipedrive_mcp.config import load_settings
from pipedrive_mcp.errors import ConfigError
from pipedrive_mcp.mutations import WRITE_TOOLS
from pipedrive_mcp.server import PROMPTS, create_server
from pipedrive_mcp.tools import READ_TOOLS


async def test_registers_every_tool_and_prompt(settings):
    mcp = create_server(settings)
    names = {t.name for t in await mcp.list_tools()}
    assert names == set(READ_TOOLS) | set(WRITE_TOOLS)
    prompts = {p.name for p in await mcp.list_prompts()}
    assert prompts == set(PROMPTS)


async def test_tool_schema_hides_self(settings):
    mcp = create_server(settings)
    tools = {t.name: t for t in await mcp.list_tools()}
    schema = tools["find_person"].inputSchema
    assert set(schema["properties"]) == {"name", "company", "email", "phone", "limit"}
    assert "PRIMARY TOOL" in tools["find_person"].description


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setattr("pipedrive_mcp.config.load_dotenv", lambda: None)
    for key in ("PIPEDRIVE_API_TOKEN", "PIPEDRIVE_DOMAIN", "PIPEDRIVE_RATE_LIMIT_MIN_TIME_MS",
                "PIPEDRIVE_RATE_LIMIT_MAX_CONCURRENT", "PIPEDRIVE_CALL_TIMEOUT_S",
                "MCP_TRANSPORT", "MCP_PORT", "PIPEDRIVE_BOOKING_FIELD_KEY"):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_settings_defaults(env):
    env.setenv("PIPEDRIVE_API_TOKEN", "t")
    env.setenv("PIPEDRIVE_DOMAIN", "https://acme.pipedrive.com/")
    s = load_settings()
    assert s.base_url == "https://acme.pipedrive.com/api/v1"
    assert (s.min_time_ms, s.max_concurrent, s.call_timeout_s) == (250, 2, 60.0)
    assert s.transport == "stdio"
    assert s.booking_field_key is None


def test_settings_overrides(env):
    env.setenv("PIPEDRIVE_API_TOKEN", "t")
    env.setenv("PIPEDRIVE_DOMAIN", "acme.pipedrive.com")
    env.setenv("PIPEDRIVE_RATE_LIMIT_MIN_TIME_MS", "500")
    env.setenv("PIPEDRIVE_RATE_LIMIT_MAX_CONCURRENT", "1")
    env.setenv("PIPEDRIVE_CALL_TIMEOUT_S", "0")
    env.setenv("MCP_TRANSPORT", "SSE")
    s = load_settings()
    assert (s.min_time_ms, s.max_concurrent, s.call_timeout_s, s.transport) == (500, 1, None, "sse")


@pytest.mark.parametrize("missing", ["PIPEDRIVE_API_TOKEN", "PIPEDRIVE_DOMAIN"])
def test_settings_require_credentials(env, missing):
    env.setenv("PIPEDRIVE_API_TOKEN", "t")
    env.setenv("PIPEDRIVE_DOMAIN", "acme.pipedrive.com")
    env.delenv(missing)
    with pytest.raises(ConfigError, match=missing):
        load_settings()


def test_settings_reject_garbage(env):
    env.setenv("PIPEDRIVE_API_TOKEN", "t")
    env.setenv("PIPEDRIVE_DOMAIN", "acme.pipedrive.com")
    env.setenv("PIPEDRIVE_RATE_LIMIT_MAX_CONCURRENT", "two")
    with pytest.raises(ConfigError, match="integer"):
        load_settings()
