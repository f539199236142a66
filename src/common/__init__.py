"""Shared helpers: logging, configuration and layout change events."""
