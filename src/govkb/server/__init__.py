"""GOVKB server surfaces: MCP tools (stdio and HTTP) and the JSON API."""
