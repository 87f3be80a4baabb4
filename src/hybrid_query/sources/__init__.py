"""Interfaces to the external data source layer."""

from hybrid_query.sources.protocol import DataSourceManager

__all__ = [
    "DataSourceManager",
]
