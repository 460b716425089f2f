"""Startup configuration read from the environment."""

import os
from pathlib import Path
from typing import Optional

from eliot import to_file
from pydantic import BaseModel, Field

from gentle_mcp.state import DEFAULT_STATE_PATH


class ServerSettings(BaseModel):
    """Settings shared by the stdio adapter, the HTTP server and the CLI."""
    state_path: str = Field(default=DEFAULT_STATE_PATH, description="Default project state file")
    host: str = Field(default="0.0.0.0", description="Bind address for HTTP transports")
    port: int = Field(default=3001, description="Port for HTTP transports")
    transport: str = Field(default="streamable-http", description="FastMCP transport for the HTTP entry point")
    log_file: Optional[str] = Field(default=None, description="eliot JSON log destination; unset disables logging")

    @classmethod
    def from_env(cls) -> "ServerSettings":
        return cls(
            state_path=os.getenv("GENTLE_STATE_PATH") or DEFAULT_STATE_PATH,
            host=os.getenv("MCP_HOST", "0.0.0.0"),
            port=int(os.getenv("MCP_PORT", "3001")),
            transport=os.getenv("MCP_TRANSPORT", "streamable-http"),
            log_file=os.getenv("GENTLE_LOG_FILE") or None,
        )


_configured_log_files = set()


def configure_logging(settings: ServerSettings) -> None:
    """
    Send eliot messages to ``settings.log_file``.

    Nothing is ever written to stdout: the stdio adapter uses it as the wire.
    Calling this twice with the same file adds a single destination.
    """
    if not settings.log_file:
        return
    target = Path(settings.log_file).resolve()
    if target in _configured_log_files:
        return
    target.parent.mkdir(parents=True, exist_ok=True)
    to_file(open(target, "ab"))
    _configured_log_files.add(target)
