"""Storage backends for linkvault."""

from .base import (
    CostRecord,
    Document,
    EnrichmentStatus,
    RequestType,
    SearchFilters,
    StorageBackend,
)
from .duckdb import DuckDBStorage

__all__ = [
    "CostRecord",
    "Document",
    "EnrichmentStatus",
    "RequestType",
    "SearchFilters",
    "StorageBackend",
    "DuckDBStorage",
]
