"""gas-mcp MCP - Model Context Protocol server for Google Apps Script.

This module provides an MCP server that exposes Apps Script project
management and clasp workflows to LLM clients.
"""

from .server import mcp, run_server

__all__ = ["mcp", "run_server"]
