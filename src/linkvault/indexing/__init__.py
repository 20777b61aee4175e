"""Embedding generation for saved bookmarks."""

from .backfill import (
    BackfillResult,
    DocumentEmbeddingResult,
    EmbeddingIndexer,
    build_embedding_text,
)

__all__ = [
    "BackfillResult",
    "DocumentEmbeddingResult",
    "EmbeddingIndexer",
    "build_embedding_text",
]
