"""MCP connection layer: transport plugins, plugin registry and connection manager."""
