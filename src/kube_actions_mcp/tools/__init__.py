"""MCP tool handlers: apply, delete, job wait."""
