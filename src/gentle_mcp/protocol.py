"""
Content-Length framed JSON-RPC server over stdio.

Wire format, for requests and responses alike::

    Content-Length: <n>\\r\\n
    \\r\\n
    <n bytes of UTF-8 JSON>

The loop is strictly turn based: read one frame, handle it (including any
state file I/O), write at most one response, repeat. It ends normally on
end-of-input before a header or on an ``exit`` request. A bad
``Content-Length`` or a stream that ends inside a frame raises
:class:`~gentle_mcp.errors.ProtocolError`.
"""

import json
import sys
from enum import Enum
from typing import Any, BinaryIO, Dict, Optional, Tuple

from eliot import log_message
from pydantic import BaseModel, ValidationError

from gentle_mcp import __version__
from gentle_mcp.errors import GentleError, ProtocolError
from gentle_mcp.tools import TOOL_DEFINITIONS, GentleToolbox

MCP_PROTOCOL_VERSION = "2025-06-18"
SERVER_NAME = "gentle_mcp"
SERVER_TITLE = "GENtle MCP"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602

_MISSING = object()


class DispatchOutcome(str, Enum):
    NoResponse = "no_response"
    Response = "response"
    Exit = "exit"


class FrameDecodeError(GentleError):
    """A complete frame arrived but its body is not JSON; the loop continues."""


class ToolCallParams(BaseModel):
    name: str
    arguments: Any = None


def read_framed_json(reader: BinaryIO) -> Optional[Any]:
    """
    Read one frame and decode its body.

    Returns:
        The decoded JSON value, or ``None`` on end-of-input before any header.

    Raises:
        ProtocolError: invalid or missing ``Content-Length``, or end-of-input
            inside a frame.
        FrameDecodeError: the body is not valid UTF-8 JSON.
    """
    content_length: Optional[int] = None
    saw_header = False
    while True:
        line = reader.readline()
        if not line:
            if content_length is not None or saw_header:
                raise ProtocolError("Unexpected EOF while reading MCP headers")
            return None
        text = line.decode("latin-1").rstrip("\r\n")
        if not text:
            if content_length is not None:
                break
            if saw_header:
                raise ProtocolError("Missing Content-Length header")
            continue
        saw_header = True
        name, sep, value = text.partition(":")
        if sep and name.strip().lower() == "content-length":
            try:
                content_length = int(value.strip())
            except ValueError:
                raise ProtocolError(f"Invalid Content-Length header '{text}'")
            if content_length < 0:
                raise ProtocolError(f"Invalid Content-Length header '{text}'")

    body = b""
    while len(body) < content_length:
        chunk = reader.read(content_length - len(body))
        if not chunk:
            raise ProtocolError(
                f"Could not read MCP JSON payload body: expected {content_length} bytes, got {len(body)}"
            )
        body += chunk
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError, RecursionError) as e:
        raise FrameDecodeError(f"Could not parse MCP JSON payload: {e}")


def write_framed_json(writer: BinaryIO, payload: Any) -> None:
    body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    writer.write(f"Content-Length: {len(body)}\r\n\r\n".encode("ascii"))
    writer.write(body)
    writer.flush()


def jsonrpc_response(request_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def jsonrpc_error(request_id: Any, code: int, message: str, data: Any = _MISSING) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not _MISSING:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": request_id, "error": error}


def initialize_result() -> Dict[str, Any]:
    return {
        "protocolVersion": MCP_PROTOCOL_VERSION,
        "capabilities": {"tools": {"listChanged": False}},
        "serverInfo": {"name": SERVER_NAME, "title": SERVER_TITLE, "version": __version__},
    }


def handle_message(toolbox: GentleToolbox, message: Any) -> Tuple[DispatchOutcome, Optional[Dict[str, Any]]]:
    """
    Dispatch one decoded request.

    An ``id`` counts as present whenever the key exists, even with a null
    value. Requests without an id never get a response, except ``initialize``
    which reports the missing id as an invalid request.
    """
    if not isinstance(message, dict):
        return DispatchOutcome.Response, jsonrpc_error(None, INVALID_REQUEST, "Invalid Request: expected JSON object")

    has_id = "id" in message
    request_id = message.get("id")
    method = message.get("method")
    if not isinstance(method, str):
        return DispatchOutcome.Response, jsonrpc_error(
            request_id, INVALID_REQUEST, "Invalid Request: missing method field", message
        )

    if method == "initialize":
        if not has_id:
            return DispatchOutcome.Response, jsonrpc_error(
                None, INVALID_REQUEST, "Invalid Request: initialize requires id"
            )
        return DispatchOutcome.Response, jsonrpc_response(request_id, initialize_result())

    if method == "notifications/initialized":
        return DispatchOutcome.NoResponse, None

    if method in ("ping", "shutdown"):
        if not has_id:
            return DispatchOutcome.NoResponse, None
        return DispatchOutcome.Response, jsonrpc_response(request_id, {})

    if method == "tools/list":
        if not has_id:
            return DispatchOutcome.NoResponse, None
        return DispatchOutcome.Response, jsonrpc_response(request_id, {"tools": TOOL_DEFINITIONS})

    if method == "tools/call":
        if not has_id:
            return DispatchOutcome.NoResponse, None
        params = message.get("params")
        try:
            call = ToolCallParams.model_validate(params if params is not None else {})
        except ValidationError as e:
            return DispatchOutcome.Response, jsonrpc_error(
                request_id, INVALID_PARAMS, "Invalid params for tools/call", {"details": str(e)}
            )
        return DispatchOutcome.Response, jsonrpc_response(request_id, toolbox.call(call.name, call.arguments))

    if method == "exit":
        return DispatchOutcome.Exit, None

    if not has_id:
        return DispatchOutcome.NoResponse, None
    return DispatchOutcome.Response, jsonrpc_error(request_id, METHOD_NOT_FOUND, f"Method '{method}' not found")


def run_server_loop(default_state_path: str, reader: BinaryIO, writer: BinaryIO) -> None:
    """
    Serve framed requests from ``reader`` until end-of-input or ``exit``.

    Raises:
        ProtocolError: on a fatal framing error.
    """
    toolbox = GentleToolbox(default_state_path)
    while True:
        try:
            message = read_framed_json(reader)
        except FrameDecodeError as e:
            log_message(message_type="mcp:parse_error", error=str(e))
            write_framed_json(writer, jsonrpc_error(None, PARSE_ERROR, "Parse error", {"details": str(e)}))
            continue
        if message is None:
            return
        outcome, response = handle_message(toolbox, message)
        if response is not None:
            write_framed_json(writer, response)
        if outcome == DispatchOutcome.Exit:
            return


def run_stdio_server(state_path: str) -> None:
    run_server_loop(state_path, sys.stdin.buffer, sys.stdout.buffer)
