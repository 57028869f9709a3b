# config.py  –  env settings + stderr logging for the Pipedrive MCP server
#
#   PIPEDRIVE_API_TOKEN=<token>
#   PIPEDRIVE_DOMAIN=acme.pipedrive.com
#
# Everything else has a default (see Settings).

import os, sys
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

from .errors import ConfigError

DEBUG = os.getenv("DEBUG", "").lower() in ("1", "true", "yes")

def log(*a):
    if DEBUG:
        print("[pipedrive_mcp]", *a, file=sys.stderr)

def log_error(*a):
    """Always printed; stdout belongs to the stdio transport."""
    print("[pipedrive_mcp]", *a, file=sys.stderr)


@dataclass
class Settings:
    api_token: str
    domain: str
    min_time_ms: int = 250
    max_concurrent: int = 2
    call_timeout_s: Optional[float] = 60.0
    transport: str = "stdio"
    port: int = 3000
    booking_field_key: Optional[str] = None

    @property
    def base_url(self) -> str:
        return f"https://{self.domain}/api/v1"

    @property
    def base_url_v2(self) -> str:
        return f"https://{self.domain}/api/v2"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")

def load_settings() -> Settings:
    """Read settings from the environment (and a .env file if present)."""
    load_dotenv()
    token = os.getenv("PIPEDRIVE_API_TOKEN")
    if not token:
        raise ConfigError("Set PIPEDRIVE_API_TOKEN in your environment or .env file")
    domain = os.getenv("PIPEDRIVE_DOMAIN")
    if not domain:
        raise ConfigError("Set PIPEDRIVE_DOMAIN (e.g. 'acme.pipedrive.com') in your environment or .env file")

    timeout = _int_env("PIPEDRIVE_CALL_TIMEOUT_S", 60)
    transport = os.getenv("MCP_TRANSPORT", "stdio").lower()
    if transport not in ("stdio", "sse"):
        raise ConfigError(f"MCP_TRANSPORT must be 'stdio' or 'sse', got {transport!r}")

    settings = Settings(
        api_token=token,
        domain=domain.strip().removeprefix("https://").rstrip("/"),
        min_time_ms=_int_env("PIPEDRIVE_RATE_LIMIT_MIN_TIME_MS", 250),
        max_concurrent=_int_env("PIPEDRIVE_RATE_LIMIT_MAX_CONCURRENT", 2),
        call_timeout_s=float(timeout) if timeout > 0 else None,
        transport=transport,
        port=_int_env("MCP_PORT", 3000),
        booking_field_key=os.getenv("PIPEDRIVE_BOOKING_FIELD_KEY") or None,
    )
    log("⚙️  settings", settings.domain, f"min_time={settings.min_time_ms}ms",
        f"max_concurrent={settings.max_concurrent}", f"timeout={settings.call_timeout_s}")
    return settings
