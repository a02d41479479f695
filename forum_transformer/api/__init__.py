"""HTTP API for driving migrations one step per request."""
