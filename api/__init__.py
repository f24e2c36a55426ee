"""HTTP and WebSocket surface for trafficsim."""
