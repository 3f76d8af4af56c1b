"""gas-mcp - Google Apps Script over the Model Context Protocol.

Namespace package containing:
- gasmcp.sdk: Core SDK for Apps Script projects, properties and clasp
- gasmcp.cli: Command-line interface
- gasmcp.mcp: Model Context Protocol server for LLM integration
"""

__version__ = "1.2.0"
