"""Relational storage adapter: engine/pool management and table definitions."""
