"""gas-mcp command-line interface."""
