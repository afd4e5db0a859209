"""In-memory caches backing the lobby views."""
