"""Simulation document schema, validation and loading."""
