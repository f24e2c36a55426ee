"""Application layer: use cases orchestrating the simulation engines."""
