# server.py  –  MCP server exposing Pipedrive to LLM agents
#
# 1) pip install -e .
# 2) echo 'PIPEDRIVE_API_TOKEN=<token>' >> .env
#    echo 'PIPEDRIVE_DOMAIN=acme.pipedrive.com' >> .env
# 3) pipedrive-mcp                 (stdio; Claude Desktop autostarts it)
#    MCP_TRANSPORT=sse pipedrive-mcp   (HTTP/SSE on MCP_PORT, default 3000)

import sys
from typing import Optional

import httpx
from mcp.server.fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from .client import PipedriveClient
from .config import Settings, load_settings, log, log_error
from .errors import ConfigError
from .mutations import WRITE_TOOLS, PipedriveMutations
from .throttle import Scheduler
from .tools import READ_TOOLS, PipedriveTools

PROMPTS = {
    "list_all_deals": (
        "List all deals in Pipedrive",
        "Please list all deals in my Pipedrive account, showing their title, value, status, and stage."),
    "list_all_persons": (
        "List all persons in Pipedrive",
        "Please list all persons in my Pipedrive account, showing their name, email, phone, and organization."),
    "list_all_pipelines": (
        "List all pipelines in Pipedrive",
        "Please list all pipelines in my Pipedrive account, showing their name and stages."),
    "analyze_deals": (
        "Analyze deals by stage",
        "Please analyze the deals in my Pipedrive account, grouping them by stage and providing total value for each stage."),
    "analyze_contacts": (
        "Analyze contacts by organization",
        "Please analyze the persons in my Pipedrive account, grouping them by organization and providing a count for each organization."),
    "analyze_leads": (
        "Analyze leads by status",
        "Please search for all leads in my Pipedrive account and group them by status."),
    "compare_pipelines": (
        "Compare different pipelines and their stages",
        "Please list all pipelines in my Pipedrive account and compare them by showing the stages in each pipeline."),
    "find_high_value_deals": (
        "Find high-value deals",
        "Please identify the highest value deals in my Pipedrive account and provide information about "
        "which stage they're in and which person or organization they're associated with."),
}


def _register_prompt(mcp: FastMCP, name: str, description: str, text: str) -> None:
    def prompt() -> str:
        return text
    prompt.__name__ = name
    mcp.prompt(name=name, description=description)(prompt)


def create_server(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> FastMCP:
    """Build the MCP server. One Scheduler throttles every Pipedrive call it makes."""
    scheduler = Scheduler.from_settings(settings)
    client = PipedriveClient(settings, scheduler, transport=transport)
    reads = PipedriveTools(client)
    writes = PipedriveMutations(client)

    mcp = FastMCP("pipedrive", port=settings.port)
    for name in READ_TOOLS:
        mcp.add_tool(getattr(reads, name), name=name)
    for name in WRITE_TOOLS:
        mcp.add_tool(getattr(writes, name), name=name)
    for name, (description, text) in PROMPTS.items():
        _register_prompt(mcp, name, description, text)

    @mcp.custom_route("/health", methods=["GET"])
    async def health(request: Request) -> JSONResponse:
        return JSONResponse({
            "status": "ok",
            "transport": settings.transport,
            "in_flight": scheduler.in_flight,
            "pending": scheduler.pending,
        })

    log("🧰 registered", len(READ_TOOLS) + len(WRITE_TOOLS), "tools,", len(PROMPTS), "prompts")
    return mcp


# ──────────────────────────────────────────────────────────────
def main() -> None:
    try:
        settings = load_settings()
    except ConfigError as exc:
        sys.exit(f"❌  {exc}")

    mcp = create_server(settings)
    if settings.transport == "sse":
        import uvicorn
        log_error(f"🚀 Pipedrive MCP server (SSE) listening on http://localhost:{settings.port}/sse")
        uvicorn.run(mcp.sse_app(), host="0.0.0.0", port=settings.port)
    else:
        log_error("🚀 Pipedrive MCP server started (stdio transport)")
        mcp.run()


if __name__ == "__main__":
    main()
