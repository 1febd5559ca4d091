"""Endpoint modules for the coordination service (internal)."""
