"""Convenience imports for Flask blueprints."""

from . import (  # noqa: F401
    auth,
    conversations,
    dashboard,
    data_sources,
    pages,
    queries,
    resources,
)

__all__ = [
    "auth",
    "conversations",
    "dashboard",
    "data_sources",
    "pages",
    "queries",
    "resources",
]
