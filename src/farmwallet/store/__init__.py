"""Persistence: entity schema, SQLite store and legacy JSON import/export."""
