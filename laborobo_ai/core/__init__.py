"""Cross-cutting utilities shared by the agent core and the server."""
