"""Error types shared by the engine, persistence and protocol layers."""

from enum import Enum
from typing import Any, Dict


class ErrorCode(str, Enum):
    """Category of an engine failure."""
    InvalidInput = "InvalidInput"
    NotFound = "NotFound"
    Unsupported = "Unsupported"
    Io = "Io"
    Internal = "Internal"


class GentleError(Exception):
    """Base class for all errors raised by gentle_mcp."""


class EngineError(GentleError):
    """
    An operation, workflow or persistence call failed a precondition.

    Engine errors never escape the protocol loop; they are reported inside a
    tool result with ``isError: true``.
    """

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.code = ErrorCode(code)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "message": self.message}


class StateParseError(EngineError):
    """The persisted state document exists but is not a valid project state."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.InvalidInput, message)


class PayloadError(GentleError, ValueError):
    """An operation or workflow payload could not be decoded."""


class ProtocolError(GentleError):
    """Fatal framing error on the stdio wire; ends the server loop."""
