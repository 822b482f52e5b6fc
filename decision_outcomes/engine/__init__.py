"""Simulation engine, sandboxed formula evaluation and statistics."""
