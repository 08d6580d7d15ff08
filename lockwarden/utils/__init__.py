"""Shared utilities: logging, caching, validation, timeouts."""
