"""
Application service that wires storage, models and the cost ledger together.

Both the HTTP API and the CLI go through ``LinkVaultService`` so they share
validation, cost accounting and response shapes.
"""

from __future__ import annotations

import time

from .config import resolve_db_path
from .embeddings import EmbeddingProvider
from .enrichment import BookmarkEnricher
from .exceptions import ModelUnavailableError
from .indexing import EmbeddingIndexer
from .ledger import CostLedger
from .logging_config import get_logger
from .models import (
    BackfillRequest,
    BackfillResponse,
    CostSummaryResponse,
    EmbedDocumentRequest,
    EmbedDocumentResponse,
    EnrichDocumentRequest,
    EnrichmentResponse,
    HybridResultItem,
    HybridSearchInfo,
    HybridSearchRequest,
    HybridSearchResponse,
    LexicalResultItem,
    LexicalSearchInfo,
    LexicalSearchRequest,
    LexicalSearchResponse,
    SemanticResultItem,
    SemanticSearchRequest,
    SemanticSearchResponse,
)
from .search import (
    HybridSearchEngine,
    LexicalSearchEngine,
    SemanticSearchEngine,
    normalized_rank,
)
from .storage import Document, DuckDBStorage, StorageBackend

logger = get_logger("service")


def _document_fields(document: Document) -> dict:
    return {
        "id": document.id,
        "url": document.url,
        "title": document.display_title,
        "summary": document.summary,
        "category": document.category,
        "source_type": document.source_type,
        "tags": list(document.tags),
        "created_at": document.created_at,
    }


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class LinkVaultService:
    """Search, embedding, enrichment and cost operations over one store."""

    def __init__(
        self,
        storage: StorageBackend,
        embedding_provider: EmbeddingProvider | None,
        ledger: CostLedger,
        enricher: BookmarkEnricher | None = None,
    ) -> None:
        self.storage = storage
        self.embedding_provider = embedding_provider
        self.ledger = ledger
        self.enricher = enricher
        self.lexical = LexicalSearchEngine(storage)
        self.semantic = SemanticSearchEngine(storage, embedding_provider, ledger)
        self.hybrid = HybridSearchEngine(self.lexical, self.semantic)

    @classmethod
    def from_env(cls, db_path: str | None = None) -> LinkVaultService:
        """Build a service from ``LINKVAULT_*`` settings and ``GOOGLE_API_KEY``.

        Without an API key the service still answers lexical searches and cost
        queries; model-backed operations raise ModelUnavailableError.
        """
        storage = DuckDBStorage(resolve_db_path(db_path))
        ledger = CostLedger(storage)

        embedding_provider: EmbeddingProvider | None = None
        enricher: BookmarkEnricher | None = None
        try:
            embedding_provider = EmbeddingProvider()
            enricher = BookmarkEnricher(storage, ledger)
        except ValueError as exc:
            logger.warning("Model-backed operations disabled: %s", exc)

        return cls(storage, embedding_provider, ledger, enricher)

    def close(self) -> None:
        close = getattr(self.storage, "close", None)
        if callable(close):
            close()

    # -- search ---------------------------------------------------------

    def lexical_search(self, request: LexicalSearchRequest) -> LexicalSearchResponse:
        started = time.perf_counter()
        hits = self.lexical.search(
            query=request.query,
            filters=request.filters(),
            limit=request.limit,
            archived=request.archived,
        )
        results = [
            LexicalResultItem(
                **_document_fields(hit.document),
                rank=normalized_rank(hit.position, len(hits)),
            )
            for hit in hits
        ]
        return LexicalSearchResponse(
            results=results,
            query=request.query,
            total_results=len(results),
            processing_time_ms=_elapsed_ms(started),
            search_info=LexicalSearchInfo(query_terms=request.query.lower().split()),
        )

    def semantic_search(self, request: SemanticSearchRequest) -> SemanticSearchResponse:
        started = time.perf_counter()
        outcome = self.semantic.search(
            query=request.query,
            filters=request.filters(),
            limit=request.limit,
            similarity_threshold=request.similarity_threshold,
        )
        results = [
            SemanticResultItem(
                **_document_fields(hit.document),
                similarity_score=hit.score,
            )
            for hit in outcome.hits
        ]
        return SemanticSearchResponse(
            results=results,
            query=request.query,
            total_results=len(results),
            processing_time_ms=_elapsed_ms(started),
            embedding_cost_usd=outcome.embedding_cost_usd,
        )

    def hybrid_search(self, request: HybridSearchRequest) -> HybridSearchResponse:
        started = time.perf_counter()
        outcome = self.hybrid.search(
            query=request.query,
            filters=request.filters(),
            limit=request.limit,
            bm25_weight=request.bm25_weight,
            semantic_weight=request.semantic_weight,
            rrf_k=request.rrf_k,
            similarity_threshold=request.similarity_threshold,
        )
        results = [
            HybridResultItem(
                **_document_fields(fused.document),
                hybrid_score=fused.hybrid_score,
                rrf_score=fused.rrf_score,
                bm25_rank=fused.lexical_rank,
                semantic_score=fused.semantic_score,
            )
            for fused in outcome.results
        ]
        return HybridSearchResponse(
            results=results,
            query=request.query,
            total_results=len(results),
            processing_time_ms=_elapsed_ms(started),
            search_info=HybridSearchInfo(
                bm25_results=outcome.lexical_count,
                semantic_results=outcome.semantic_count,
                bm25_weight=request.bm25_weight,
                semantic_weight=request.semantic_weight,
                rrf_k=request.rrf_k,
            ),
        )

    # -- embeddings -----------------------------------------------------

    def _indexer(self) -> EmbeddingIndexer:
        if self.embedding_provider is None:
            raise ModelUnavailableError("Embedding model is not configured")
        return EmbeddingIndexer(self.storage, self.embedding_provider, self.ledger)

    def backfill_embeddings(self, request: BackfillRequest) -> BackfillResponse:
        result = self._indexer().run_batch(limit=request.limit, offset=request.offset)
        return BackfillResponse(
            processed=result.processed,
            successful=result.successful,
            failed=result.failed,
            total_cost_usd=result.total_cost_usd,
            remaining_count=result.remaining_count,
            errors=list(result.errors),
        )

    def embed_document(self, request: EmbedDocumentRequest) -> EmbedDocumentResponse:
        result = self._indexer().embed_document(
            document_id=request.document_id,
            batch=request.batch,
        )
        return EmbedDocumentResponse(
            document_id=result.document_id,
            dimensions=result.dimensions,
            tokens=result.tokens,
            cost_usd=result.cost_usd,
        )

    # -- enrichment / costs ---------------------------------------------

    def enrich_document(self, request: EnrichDocumentRequest) -> EnrichmentResponse:
        if self.enricher is None:
            raise ModelUnavailableError("Chat model is not configured")
        result = self.enricher.enrich(document_id=request.document_id)
        return EnrichmentResponse(
            document_id=result.document_id,
            summary=result.enrichment.summary,
            category=result.enrichment.category,
            tags=result.enrichment.tags,
            cost_usd=result.cost_usd,
        )

    def cost_summary(self) -> CostSummaryResponse:
        return self.ledger.summary()
