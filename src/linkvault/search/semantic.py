"""
Vector-based semantic search engine.

Embeds a query and scores every stored document vector by cosine similarity.
This is a linear scan over the user's embedded documents, which is fine for a
few thousand bookmarks; a nearest-neighbour index can replace ``_score``
without changing ``search``.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from ..embeddings import EmbeddingProvider
from ..exceptions import ModelUnavailableError
from ..ledger import CostLedger
from ..logging_config import get_logger
from ..storage import CostRecord, Document, SearchFilters, StorageBackend

logger = get_logger("search.semantic")


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity over the first ``min(len(a), len(b))`` components.

    Returns 0.0 when either vector has zero magnitude.
    """
    length = min(len(a), len(b))
    vec_a = np.asarray(a[:length], dtype=np.float64)
    vec_b = np.asarray(b[:length], dtype=np.float64)
    norm = float(np.linalg.norm(vec_a) * np.linalg.norm(vec_b))
    if norm == 0.0:
        return 0.0
    similarity = float(np.dot(vec_a, vec_b)) / norm
    return max(-1.0, min(1.0, similarity))


@dataclass(frozen=True)
class SemanticHit:
    document: Document
    score: float

    @property
    def document_id(self) -> str:
        return self.document.id


@dataclass(frozen=True)
class SemanticSearchResult:
    hits: list[SemanticHit]
    embedding_cost_usd: float


class SemanticSearchEngine:
    """Embed a query and search stored document embeddings."""

    def __init__(
        self,
        storage: StorageBackend,
        embedding_provider: EmbeddingProvider | None,
        ledger: CostLedger,
    ) -> None:
        self.storage = storage
        self.embedding_provider = embedding_provider
        self.ledger = ledger

    def search(
        self,
        *,
        query: str,
        filters: SearchFilters | None = None,
        limit: int = 20,
        similarity_threshold: float = 0.7,
    ) -> SemanticSearchResult:
        """Return hits scoring strictly above *similarity_threshold*.

        Raises CostLimitReachedError before the embedding call when a cap is
        reached, and ModelUnavailableError when the call fails.
        """
        provider = self.embedding_provider
        if provider is None:
            raise ModelUnavailableError("Embedding model is not configured")

        self.ledger.ensure_can_spend(estimated_cost=provider.estimate_cost([query]))
        try:
            embedded = provider.embed(query, task_type="RETRIEVAL_QUERY")
        except ModelUnavailableError as exc:
            self.ledger.record(
                CostRecord.failure(
                    model=provider.model,
                    request_type="search_embedding",
                    error_message=str(exc),
                )
            )
            raise

        cost = provider.cost_for(embedded.token_count)
        self.ledger.record(
            CostRecord(
                model=provider.model,
                request_type="search_embedding",
                prompt_tokens=embedded.token_count,
                total_tokens=embedded.token_count,
                cost_usd=cost,
            )
        )

        hits = self._score(
            query_embedding=embedded.vector,
            embedding_model=provider.model,
            filters=filters or SearchFilters(),
            limit=max(limit, 1),
            similarity_threshold=similarity_threshold,
        )
        return SemanticSearchResult(hits=hits, embedding_cost_usd=cost)

    def _score(
        self,
        *,
        query_embedding: list[float],
        embedding_model: str,
        filters: SearchFilters,
        limit: int,
        similarity_threshold: float,
    ) -> list[SemanticHit]:
        candidates = self.storage.list_embedded_documents(
            embedding_model=embedding_model,
            filters=filters,
        )
        hits: list[SemanticHit] = []
        for document in candidates:
            if document.embedding is None:
                continue
            if len(document.embedding) != len(query_embedding):
                logger.warning(
                    "Embedding dimension mismatch for document %s: stored %d, query %d",
                    document.id,
                    len(document.embedding),
                    len(query_embedding),
                )
            score = cosine_similarity(query_embedding, document.embedding)
            if score > similarity_threshold:
                hits.append(SemanticHit(document=document, score=score))

        hits.sort(
            key=lambda hit: (
                -hit.score,
                -hit.document.created_at.timestamp(),
                hit.document.id,
            )
        )
        return hits[:limit]
