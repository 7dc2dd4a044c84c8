"""Persistence layer: table declarations, descriptors and derived contracts."""

from dataflow.models.db import Base, Database, get_database, session_scope

__all__ = ["Base", "Database", "get_database", "session_scope"]
