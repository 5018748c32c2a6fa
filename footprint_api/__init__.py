"""HTTP API for the carbon footprint engine."""
