"""Table definitions for the key store."""

from __future__ import annotations

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Index,
    MetaData,
    String,
    Table,
    Text,
)

metadata = MetaData()

# name: read-write name, roname: read-only alias. Both are immutable.
keys = Table(
    "keys",
    metadata,
    Column("name", String, primary_key=True),
    Column("roname", String, nullable=False, unique=True),
    Column("value", Text, nullable=False, default=""),
    Column("last_accessed", DateTime(timezone=True), nullable=False),
    CheckConstraint("name <> roname", name="ck_keys_distinct_names"),
    Index("ix_keys_last_accessed", "last_accessed"),
)
