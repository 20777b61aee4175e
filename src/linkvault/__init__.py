"""
LinkVault - hybrid search and cost-capped AI processing for saved bookmarks.

This package stores bookmarks in DuckDB, embeds them with Google Gemini,
and answers lexical, semantic and hybrid (Reciprocal Rank Fusion) queries.
Every metered model call is written to an append-only cost ledger that
enforces daily and monthly spend caps.

Example usage:
    >>> from linkvault import LinkVaultService, HybridSearchRequest
    >>> service = LinkVaultService.from_env()
    >>> response = service.hybrid_search(HybridSearchRequest(query="swiftui"))
"""

from .embeddings import EmbeddingProvider
from .enrichment import BookmarkEnricher
from .exceptions import (
    CostLimitReachedError,
    DocumentNotFoundError,
    LinkVaultError,
    MissingQueryError,
    ModelUnavailableError,
    SearchUnavailableError,
    ValidationError,
)
from .ledger import CostLedger
from .models import (
    BackfillRequest,
    EmbedDocumentRequest,
    EnrichDocumentRequest,
    HybridSearchRequest,
    LexicalSearchRequest,
    SemanticSearchRequest,
)
from .service import LinkVaultService
from .storage import CostRecord, Document, DuckDBStorage

__all__ = [
    # Service
    "LinkVaultService",
    "CostLedger",
    "EmbeddingProvider",
    "BookmarkEnricher",
    # Storage
    "CostRecord",
    "Document",
    "DuckDBStorage",
    # Requests
    "BackfillRequest",
    "EmbedDocumentRequest",
    "EnrichDocumentRequest",
    "HybridSearchRequest",
    "LexicalSearchRequest",
    "SemanticSearchRequest",
    # Errors
    "LinkVaultError",
    "ValidationError",
    "MissingQueryError",
    "DocumentNotFoundError",
    "CostLimitReachedError",
    "ModelUnavailableError",
    "SearchUnavailableError",
]
