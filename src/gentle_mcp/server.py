#!/usr/bin/env python3
"""
GENtle MCP Server - cloning project state tools via Model Context Protocol.

This server exposes a persisted GENtle project (sequences, lineage graph,
containers, arrangements and display settings) to MCP clients. Every tool
goes through the shared engine contract, so a request made here has exactly
the same effect as the same operation typed into the GENtle shell or CLI.

Tools:
- capabilities: engine protocol version, supported operations and export formats
- state_summary: deterministic summary of the project state
- op: apply one operation and persist the state (requires confirm=true)
- workflow: apply a workflow of operations and persist the state (requires confirm=true)
- help: command reference from the shell glossary (text, json or markdown)

Transports:
1. ``gentle-mcp`` speaks Content-Length framed JSON-RPC on stdin/stdout
2. ``gentle-mcp-http`` serves the same tools with FastMCP over HTTP or SSE
"""

import sys
from typing import Any, Dict, List, Optional, Union

import typer
from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from gentle_mcp import __version__
from gentle_mcp.config import ServerSettings, configure_logging
from gentle_mcp.errors import ProtocolError
from gentle_mcp.protocol import run_stdio_server
from gentle_mcp.state import DEFAULT_STATE_PATH
from gentle_mcp.tools import TOOL_DEFINITIONS, GentleToolbox, ToolResult


def _tool_description(name: str) -> str:
    for tool in TOOL_DEFINITIONS:
        if tool["name"] == name:
            return tool["description"]
    raise KeyError(name)


class GentleMCP(FastMCP):
    """GENtle MCP Server with project state tools."""

    def __init__(
        self,
        name: str = "GENtle MCP",
        state_path: str = DEFAULT_STATE_PATH,
        **kwargs
    ):
        """Initialize the GENtle tools with FastMCP functionality."""
        super().__init__(name=name, **kwargs)
        self.toolbox = GentleToolbox(state_path)
        self._register_gentle_tools()

    def _register_gentle_tools(self):
        """Register the five GENtle tools."""
        self.tool(name="capabilities", description=_tool_description("capabilities"))(self.capabilities)
        self.tool(name="state_summary", description=_tool_description("state_summary"))(self.state_summary)
        self.tool(name="op", description=_tool_description("op"))(self.op)
        self.tool(name="workflow", description=_tool_description("workflow"))(self.workflow)
        self.tool(name="help", description=_tool_description("help"))(self.help)

    @staticmethod
    def _unwrap(result: ToolResult) -> Any:
        if result["isError"]:
            raise ToolError(result["content"][0]["text"])
        return result["structuredContent"]

    def capabilities(self) -> Dict[str, Any]:
        """
        Return the engine capability descriptor.

        Returns:
            Dictionary with protocol_version, supported_operations,
            supported_export_formats and deterministic_operation_log
        """
        return self._unwrap(self.toolbox.call("capabilities", {}))

    def state_summary(self, state_path: Optional[str] = None) -> Dict[str, Any]:
        """
        Summarize the project state stored at ``state_path``.

        Args:
            state_path: Project state file (defaults to the server state path)

        Returns:
            Sequence and container listings, lineage counts, parameters and display settings
        """
        return self._unwrap(self.toolbox.call("state_summary", {"state_path": state_path}))

    def op(
        self,
        confirm: bool,
        operation: Optional[Dict[str, Any]] = None,
        op: Optional[Dict[str, Any]] = None,
        state_path: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Apply one operation and persist the resulting state.

        Args:
            confirm: Must be true; mutating calls are refused otherwise
            operation: Operation payload, e.g. {"Reverse": {"input": "x", "output_id": null}}
            op: Alias for operation
            state_path: Project state file (defaults to the server state path)

        Returns:
            Dictionary with state_path, the operation result and the new state summary

        Example:
            op(confirm=True, operation={"SetParameter": {"name": "max_fragments_per_container", "value": 123}})
        """
        args: Dict[str, Any] = {"confirm": confirm, "state_path": state_path}
        if operation is not None:
            args["operation"] = operation
        if op is not None:
            args["op"] = op
        return self._unwrap(self.toolbox.call("op", args))

    def workflow(
        self,
        confirm: bool,
        workflow: Optional[Dict[str, Any]] = None,
        wf: Optional[Dict[str, Any]] = None,
        state_path: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Apply a workflow and persist the resulting state.

        Nothing is written if any operation of the workflow fails.

        Args:
            confirm: Must be true; mutating calls are refused otherwise
            workflow: Workflow payload {"run_id": ..., "ops": [...]}
            wf: Alias for workflow
            state_path: Project state file (defaults to the server state path)

        Returns:
            Dictionary with state_path, result_count, per-operation results and the new state summary
        """
        args: Dict[str, Any] = {"confirm": confirm, "state_path": state_path}
        if workflow is not None:
            args["workflow"] = workflow
        if wf is not None:
            args["wf"] = wf
        return self._unwrap(self.toolbox.call("workflow", args))

    def help(
        self,
        format: str = "text",
        interface: Optional[str] = None,
        topic: Optional[Union[str, List[str]]] = None,
    ) -> Any:
        """
        Return shell command reference content.

        Args:
            format: text, json or markdown
            interface: Optional filter (all|cli-direct|cli-shell|gui-shell|js|lua|mcp)
            topic: Command path as a string ("state-summary") or token list (["state-summary"])

        Returns:
            The help catalog or a single topic in the requested format
        """
        return self._unwrap(self.toolbox.call("help", {"format": format, "interface": interface, "topic": topic}))


stdio_app = typer.Typer(
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _version_callback(value: bool):
    if value:
        typer.echo(f"gentle_mcp {__version__}")
        raise typer.Exit()


@stdio_app.command()
def serve_stdio(
    state: str = typer.Option(
        DEFAULT_STATE_PATH,
        "--state",
        "--project",
        help="Default project state file used when a tool call gives no state_path.",
    ),
    version: bool = typer.Option(
        False, "--version", "-V", callback=_version_callback, is_eager=True, help="Print version and exit."
    ),
):
    """
    Serve GENtle tools over stdio (Content-Length framed JSON-RPC).

    Tools: capabilities, state_summary, op, workflow, help.
    The default state path is .gentle_state.json unless --state is given.
    """
    configure_logging(ServerSettings.from_env())
    try:
        run_stdio_server(state)
    except ProtocolError as e:
        typer.echo(f"gentle_mcp: {e}", err=True)
        raise typer.Exit(code=1)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the stdio adapter and return a process exit code.

    Returns 0 after a clean shutdown or ``--help``/``--version``, and 1 on an
    unknown argument or a fatal protocol error. Usage errors, which typer
    reports with exit status 2, are mapped to 1.
    """
    try:
        stdio_app(args=argv, prog_name="gentle_mcp")
    except SystemExit as e:
        if e.code is None:
            return 0
        if isinstance(e.code, int):
            return 1 if e.code == 2 else e.code
        return 1
    return 0


def cli_app_stdio():
    """
    Run the GENtle MCP server with stdio transport.

    Reads framed JSON-RPC requests from standard input and writes responses to
    standard output. This is suitable for MCP clients that spawn the server as
    a child process.
    """
    sys.exit(main())


def cli_app():
    """
    Run the GENtle MCP server with HTTP transport.

    Starts the FastMCP server using ``MCP_TRANSPORT`` (streamable-http by
    default) on ``MCP_HOST``/``MCP_PORT``. The default project state comes
    from ``GENTLE_STATE_PATH``.
    """
    settings = ServerSettings.from_env()
    configure_logging(settings)
    app = GentleMCP(state_path=settings.state_path)
    app.run(transport=settings.transport, host=settings.host, port=settings.port)


def cli_app_sse():
    """
    Run the GENtle MCP server with SSE transport.

    Starts the server with Server-Sent Events transport on the configured
    host and port. This is suitable for web applications and HTTP-based clients.
    """
    settings = ServerSettings.from_env()
    configure_logging(settings)
    app = GentleMCP(state_path=settings.state_path)
    app.run(transport="sse", host=settings.host, port=settings.port)


if __name__ == "__main__":
    cli_app_stdio()
