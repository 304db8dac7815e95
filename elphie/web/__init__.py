"""HTTP / SSE bridge."""
