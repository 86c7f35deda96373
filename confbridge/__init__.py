"""Route-point conference bridge between a call-control provider and WebSocket clients."""
