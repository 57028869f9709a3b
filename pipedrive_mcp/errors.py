from typing import Optional


class PipedriveError(Exception):
    """Base class for errors raised by this package."""


class ConfigError(PipedriveError):
    pass


class InvalidQuery(PipedriveError):
    """A search was requested without any usable criteria."""


class RemoteCallFailure(PipedriveError):
    """A Pipedrive API call failed (network, auth, HTTP error, success=false)."""

    def __init__(self, operation: str, message: str, status_code: Optional[int] = None):
        self.operation = operation
        self.message = message
        self.status_code = status_code
        prefix = f"HTTP {status_code}: " if status_code else ""
        super().__init__(f"{operation} failed – {prefix}{message}")


class RecordNotFound(RemoteCallFailure):
    pass


class RemoteCallTimeout(RemoteCallFailure):
    pass
