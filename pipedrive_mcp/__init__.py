"""Pipedrive CRM exposed as MCP tools, with throttled calls and client-side search."""

__version__ = "2.0.0"
