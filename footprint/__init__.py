"""Carbon footprint engine: pricing, daily aggregates, rewards, and ranking."""
