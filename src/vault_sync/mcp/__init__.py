"""MCP server exposing vault sync tools over stdio."""
