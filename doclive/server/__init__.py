"""HTTP layer: static docs, response decoration, live-reload endpoints."""
