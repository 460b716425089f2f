"""
GENtle MCP - persisted project engine for DNA cloning projects.

The package keeps a project state (sequences, lineage graph, containers and
arrangements) on disk and mutates it only through named operations and
workflows. The same engine is reachable from a Content-Length framed stdio
JSON-RPC server, a FastMCP network server and a direct command line.
"""

__version__ = "0.3.0"
