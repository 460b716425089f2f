"""
The five GENtle tools shared by the stdio protocol adapter and the FastMCP server.

Every tool returns an MCP tool-result dict::

    {"content": [{"type": "text", "text": ...}], "structuredContent": ..., "isError": bool}

Tool failures (bad arguments, missing confirmation, unparsable payloads,
unreadable state, engine errors) never raise; they come back with
``isError: true``. ``op`` and ``workflow`` persist the state only after the
engine call succeeded, so a failed call leaves the state file untouched.
"""

import json
from typing import Any, Dict, List, Optional

from eliot import start_action

from gentle_mcp.engine import GentleEngine
from gentle_mcp.errors import EngineError, PayloadError
from gentle_mcp.operations import parse_operation, parse_workflow
from gentle_mcp.shell_docs import (
    HelpError,
    help_json,
    help_markdown,
    help_text,
    topic_help_json,
    topic_help_markdown,
    topic_help_text,
)
from gentle_mcp.state import ProjectState, load_state

ToolResult = Dict[str, Any]

_STATE_PATH_SCHEMA = {
    "type": "string",
    "description": "Optional project state path. Defaults to server startup state path.",
}
_CONFIRM_SCHEMA = {
    "type": "boolean",
    "description": "Must be true for mutating MCP tool execution.",
}

TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "name": "capabilities",
        "title": "Capabilities",
        "description": "Return shared GENtle engine capabilities.",
        "inputSchema": {"type": "object", "properties": {}, "additionalProperties": False},
    },
    {
        "name": "state_summary",
        "title": "State Summary",
        "description": "Return a deterministic summary of the current project state.",
        "inputSchema": {
            "type": "object",
            "properties": {"state_path": _STATE_PATH_SCHEMA},
            "additionalProperties": False,
        },
    },
    {
        "name": "op",
        "title": "Apply Operation",
        "description": "Apply one operation via shared engine contract and persist state (requires confirm=true).",
        "inputSchema": {
            "type": "object",
            "properties": {
                "confirm": _CONFIRM_SCHEMA,
                "state_path": _STATE_PATH_SCHEMA,
                "operation": {
                    "type": "object",
                    "description": "Operation payload in engine Operation enum JSON shape.",
                },
                "op": {"type": "object", "description": "Alias for operation."},
            },
            "required": ["confirm"],
            "additionalProperties": False,
        },
    },
    {
        "name": "workflow",
        "title": "Apply Workflow",
        "description": "Apply a workflow via shared engine contract and persist state (requires confirm=true).",
        "inputSchema": {
            "type": "object",
            "properties": {
                "confirm": _CONFIRM_SCHEMA,
                "state_path": _STATE_PATH_SCHEMA,
                "workflow": {
                    "type": "object",
                    "description": "Workflow payload in engine Workflow JSON shape.",
                },
                "wf": {"type": "object", "description": "Alias for workflow."},
            },
            "required": ["confirm"],
            "additionalProperties": False,
        },
    },
    {
        "name": "help",
        "title": "Help",
        "description": "Return shell command reference content from the command glossary.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "format": {"type": "string", "enum": ["text", "json", "markdown"]},
                "interface": {
                    "type": "string",
                    "description": "Optional interface filter (all|cli-direct|cli-shell|gui-shell|js|lua|mcp).",
                },
                "topic": {
                    "description": "Optional help topic (string path or array of path tokens).",
                    "oneOf": [
                        {"type": "string"},
                        {"type": "array", "items": {"type": "string"}},
                    ],
                },
            },
            "additionalProperties": False,
        },
    },
]


class ToolArgumentError(ValueError):
    """A tool argument is missing or has the wrong shape."""


def tool_result_text(text: str, fmt: str = "text", is_error: bool = False) -> ToolResult:
    return {
        "content": [{"type": "text", "text": text}],
        "structuredContent": {"format": fmt, "text": text},
        "isError": is_error,
    }


def tool_result_json(value: Any, is_error: bool = False) -> ToolResult:
    return {
        "content": [{"type": "text", "text": json.dumps(value, indent=2)}],
        "structuredContent": value,
        "isError": is_error,
    }


def state_path_from_args(default_state_path: str, args: Dict[str, Any]) -> str:
    """``state_path`` if it is a non-blank string, else the server default."""
    value = args.get("state_path")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default_state_path


def require_confirm_true(args: Dict[str, Any], tool_name: str) -> None:
    """
    Raises:
        ToolArgumentError: unless ``confirm`` is exactly the boolean ``true``.
    """
    confirm = args.get("confirm")
    if confirm is True:
        return
    if confirm is None or confirm is False:
        raise ToolArgumentError(f"Refusing MCP tool '{tool_name}' without explicit confirm=true")
    raise ToolArgumentError(f"MCP tool '{tool_name}' requires boolean confirm=true")


def parse_topic(raw: Any) -> Optional[List[str]]:
    """
    Split a help topic into tokens.

    ``"help state-summary"`` and ``["help", "state-summary"]`` give the same
    tokens; blank input gives ``None``.
    """
    if raw is None:
        return None
    if isinstance(raw, str):
        tokens = raw.split()
    elif isinstance(raw, list):
        tokens = []
        for value in raw:
            if not isinstance(value, str):
                raise ToolArgumentError("help.topic array must contain only string values")
            if value.strip():
                tokens.append(value.strip())
    else:
        raise ToolArgumentError("help.topic must be a string or array of strings")
    return tokens or None


def _as_args(arguments: Any) -> Dict[str, Any]:
    return arguments if isinstance(arguments, dict) else {}


class GentleToolbox:
    """Tool implementations bound to the default state path of one server."""

    def __init__(self, default_state_path: str):
        self.default_state_path = default_state_path

    def call(self, name: str, arguments: Any = None) -> ToolResult:
        """Dispatch one tool call by name; unknown names are a tool error."""
        tool = name.strip()
        with start_action(action_type="mcp:tool_call", tool=tool) as action:
            handlers = {
                "capabilities": self.capabilities,
                "state_summary": self.state_summary,
                "op": self.op,
                "workflow": self.workflow,
                "help": self.help,
            }
            handler = handlers.get(tool)
            if handler is None:
                result = tool_result_text(f"Unknown MCP tool '{tool}'", "text", True)
            else:
                result = handler(_as_args(arguments))
            action.add_success_fields(is_error=result["isError"])
            return result

    def _load(self, state_path: str) -> ProjectState:
        try:
            return load_state(state_path)
        except EngineError as e:
            raise ToolArgumentError(f"Could not load state from '{state_path}': {e}")

    def capabilities(self, args: Optional[Dict[str, Any]] = None) -> ToolResult:
        return tool_result_json(GentleEngine.capabilities().model_dump(mode="json"))

    def state_summary(self, args: Dict[str, Any]) -> ToolResult:
        state_path = state_path_from_args(self.default_state_path, args)
        try:
            state = self._load(state_path)
        except ToolArgumentError as e:
            return tool_result_text(str(e), "text", True)
        engine = GentleEngine.from_state(state)
        return tool_result_json(engine.summarize_state().model_dump(mode="json"))

    def op(self, args: Dict[str, Any]) -> ToolResult:
        try:
            require_confirm_true(args, "op")
            state_path = state_path_from_args(self.default_state_path, args)
            raw = args["operation"] if "operation" in args else args.get("op")
            if raw is None:
                raise ToolArgumentError("op requires an 'operation' argument (or alias 'op')")
            try:
                operation = parse_operation(raw)
            except PayloadError as e:
                raise ToolArgumentError(f"Could not parse operation payload: {e}")
            state = self._load(state_path)
        except ToolArgumentError as e:
            return tool_result_text(str(e), "text", True)

        engine = GentleEngine.from_state(state)
        try:
            result = engine.apply(operation)
            engine.state.save_to_path(state_path)
        except EngineError as e:
            return tool_result_json({"state_path": state_path, "error": e.to_dict()}, True)
        return tool_result_json({
            "state_path": state_path,
            "result": result.model_dump(mode="json"),
            "state_summary": engine.summarize_state().model_dump(mode="json"),
        })

    def workflow(self, args: Dict[str, Any]) -> ToolResult:
        try:
            require_confirm_true(args, "workflow")
            state_path = state_path_from_args(self.default_state_path, args)
            raw = args["workflow"] if "workflow" in args else args.get("wf")
            if raw is None:
                raise ToolArgumentError("workflow requires a 'workflow' argument (or alias 'wf')")
            try:
                workflow = parse_workflow(raw)
            except PayloadError as e:
                raise ToolArgumentError(f"Could not parse workflow payload: {e}")
            state = self._load(state_path)
        except ToolArgumentError as e:
            return tool_result_text(str(e), "text", True)

        engine = GentleEngine.from_state(state)
        try:
            results = engine.apply_workflow(workflow)
            engine.state.save_to_path(state_path)
        except EngineError as e:
            return tool_result_json({"state_path": state_path, "error": e.to_dict()}, True)
        return tool_result_json({
            "state_path": state_path,
            "result_count": len(results),
            "results": [r.model_dump(mode="json") for r in results],
            "state_summary": engine.summarize_state().model_dump(mode="json"),
        })

    def help(self, args: Dict[str, Any]) -> ToolResult:
        raw_format = args.get("format")
        fmt = (raw_format if isinstance(raw_format, str) else "text").strip().lower()
        raw_interface = args.get("interface")
        interface = raw_interface if isinstance(raw_interface, str) else None
        try:
            topic = parse_topic(args.get("topic"))
        except ToolArgumentError as e:
            return tool_result_text(str(e), "text", True)

        try:
            if fmt == "json":
                value = topic_help_json(topic, interface) if topic else help_json(interface)
                return tool_result_json(value)
            if fmt == "markdown":
                text = topic_help_markdown(topic, interface) if topic else help_markdown(interface)
                return tool_result_text(text, "markdown")
            if fmt == "text":
                text = topic_help_text(topic, interface) if topic else help_text(interface)
                return tool_result_text(text, "text")
        except HelpError as e:
            return tool_result_text(str(e), "text", True)
        return tool_result_text(
            f"Unsupported help.format '{fmt}' (expected text|json|markdown)", "text", True
        )
