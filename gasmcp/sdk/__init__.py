"""gas-mcp SDK - Core library for Google Apps Script automation.

This SDK can be used by:
- The gasmcp CLI
- The gas-mcp MCP server
- Third-party applications

Example usage:
    from gasmcp.sdk import build_context, script

    ctx = build_context()
    ctx.auth.authenticate()
    project = script.create_project(ctx.auth, "Demo")
    ctx.properties.set_secure_property(project["scriptId"], "API_KEY", "abc123")
"""

from . import config
from . import auth
from . import crypto
from . import script
from . import properties
from . import clasp
from .context import ServerContext, build_context

__all__ = ["config", "auth", "crypto", "script", "properties", "clasp", "ServerContext", "build_context"]
