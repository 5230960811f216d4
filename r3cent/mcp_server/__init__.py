"""MCP (stdio) transport for the ask pipeline."""
