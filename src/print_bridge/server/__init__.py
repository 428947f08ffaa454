"""WebSocket server, connection registry and message routing."""
