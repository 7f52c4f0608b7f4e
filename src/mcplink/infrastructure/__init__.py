"""Infrastructure: caches, transport plugins and the connection manager."""
