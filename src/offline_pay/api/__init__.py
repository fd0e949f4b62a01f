"""Local HTTP API and the mesh websocket endpoint."""
