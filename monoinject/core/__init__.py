"""Shared helpers: logging setup, JSON files, filesystem walking, env files."""
