"""Service layer: multi-source fetch operations over the engine."""
