"""Persistence layer (SQLite)."""
