"""HTTP and WebSocket boundary."""
