#!/usr/bin/env python3
"""
Tests for the FastMCP server class and the stdio entry point.

The tool methods are called directly, the same way MCP clients reach them
through FastMCP, so their results and errors can be checked without a
transport.
"""

import json
from pathlib import Path

import pytest
from fastmcp.exceptions import ToolError

from gentle_mcp import server as server_module
from gentle_mcp.errors import ProtocolError
from gentle_mcp.server import GentleMCP, main

SET_PARAMETER = {"SetParameter": {"name": "max_fragments_per_container", "value": 42}}


@pytest.fixture
def mcp_server(state_path):
    """Create a GENtle MCP server instance bound to a temporary state file."""
    return GentleMCP(state_path=state_path)


class TestGentleMCPTools:
    """Tool methods registered on the FastMCP server."""

    def test_capabilities(self, mcp_server):
        """capabilities returns the descriptor."""
        result = mcp_server.capabilities()
        assert result["protocol_version"] == "v1"
        assert "CreateArrangementSerial" in result["supported_operations"]

    def test_state_summary_empty(self, mcp_server):
        """An empty project has no sequences or containers."""
        result = mcp_server.state_summary()
        assert result["sequence_count"] == 0
        assert result["containers"] == []

    def test_op_requires_confirm(self, mcp_server, state_path):
        """A refused op is a ToolError and writes nothing."""
        with pytest.raises(ToolError, match="confirm=true"):
            mcp_server.op(confirm=False, operation=SET_PARAMETER)
        assert not Path(state_path).exists()

    def test_op_persists(self, mcp_server, state_path):
        """A confirmed op is saved."""
        result = mcp_server.op(confirm=True, operation=SET_PARAMETER)
        assert result["result"]["op_id"] == "op-1"
        assert json.loads(Path(state_path).read_text())["parameters"]["max_fragments_per_container"] == 42

    def test_op_engine_error(self, mcp_server):
        """Engine failures become ToolError."""
        with pytest.raises(ToolError):
            mcp_server.op(confirm=True, op={"Reverse": {"input": "nothing"}})

    def test_workflow(self, mcp_server):
        """Workflows run through the FastMCP method."""
        workflow = {
            "run_id": "fastmcp",
            "ops": [
                {"LoadSequence": {"sequence": "ATGCATGC", "as_id": "x"}},
                {"Branch": {"input": "x"}},
            ],
        }
        result = mcp_server.workflow(confirm=True, workflow=workflow)
        assert result["result_count"] == 2
        assert result["state_summary"]["sequence_count"] == 2

    def test_help(self, mcp_server):
        """help returns text for a topic."""
        result = mcp_server.help(topic=["workflow"])
        assert result["format"] == "text"
        assert "Path: workflow" in result["text"]

    def test_help_unsupported_format(self, mcp_server):
        """Unsupported formats become ToolError."""
        with pytest.raises(ToolError, match="Unsupported help.format"):
            mcp_server.help(format="rst")


class TestStdioEntryPoint:
    """Exit codes of the stdio command line."""

    def test_help_exits_zero(self, capsys):
        """--help prints usage and exits 0."""
        assert main(["-h"]) == 0
        assert "--state" in capsys.readouterr().out

    def test_version_exits_zero(self, capsys):
        """--version prints the program name and exits 0."""
        assert main(["--version"]) == 0
        assert "gentle_mcp" in capsys.readouterr().out

    def test_unknown_argument_exits_one(self, capsys):
        """An unknown option is a usage error with exit code 1."""
        assert main(["--bogus"]) == 1
        assert "--bogus" in capsys.readouterr().err

    def test_state_option_reaches_server(self, monkeypatch):
        """--project is an alias of --state."""
        calls = []
        monkeypatch.setattr(server_module, "run_stdio_server", calls.append)
        assert main(["--project", "custom.json"]) == 0
        assert calls == ["custom.json"]

    def test_default_state_path(self, monkeypatch):
        """Without --state the server uses .gentle_state.json."""
        calls = []
        monkeypatch.setattr(server_module, "run_stdio_server", calls.append)
        assert main([]) == 0
        assert calls == [".gentle_state.json"]

    def test_fatal_protocol_error_exits_one(self, monkeypatch, capsys):
        """A transport failure is reported on stderr with exit code 1."""
        def broken(state):
            raise ProtocolError("stdin closed mid-frame")

        monkeypatch.setattr(server_module, "run_stdio_server", broken)
        assert main([]) == 1
        assert "stdin closed mid-frame" in capsys.readouterr().err
