"""
Hybrid retrieval: lexical and semantic branches in parallel, fused with RRF.
"""

from __future__ import annotations

from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable

from ..exceptions import SearchUnavailableError
from ..logging_config import get_logger
from ..storage import SearchFilters
from .lexical import LexicalHit, LexicalSearchEngine
from .ranker import DEFAULT_RRF_K, FusedDocument, fuse_rankings
from .semantic import SemanticHit, SemanticSearchEngine

logger = get_logger("search.hybrid")


@dataclass(frozen=True)
class BranchOutcome:
    """Result-or-error of one branch of a settle-all join."""

    name: str
    value: Any = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def settle_all(
    calls: dict[str, Callable[[], Any]],
    executor: Executor | None = None,
) -> dict[str, BranchOutcome]:
    """Run every call in parallel and wait for all of them.

    A failing call never cancels the others; its exception is returned in
    its outcome instead of being raised. Without an *executor* a throwaway
    pool sized to the number of calls is used.
    """
    outcomes: dict[str, BranchOutcome] = {}
    if not calls:
        return outcomes
    if executor is None:
        with ThreadPoolExecutor(max_workers=len(calls)) as pool:
            return settle_all(calls, pool)

    futures = {name: executor.submit(call) for name, call in calls.items()}
    for name, future in futures.items():
        try:
            outcomes[name] = BranchOutcome(name=name, value=future.result())
        except Exception as exc:
            outcomes[name] = BranchOutcome(name=name, error=exc)
    return outcomes


@dataclass(frozen=True)
class HybridSearchResult:
    results: list[FusedDocument]
    lexical_count: int
    semantic_count: int
    embedding_cost_usd: float
    lexical_error: Exception | None = None
    semantic_error: Exception | None = None


class HybridSearchEngine:
    """Parallel retrieval engine for the lexical + semantic query paths."""

    def __init__(
        self,
        lexical: LexicalSearchEngine,
        semantic: SemanticSearchEngine,
    ) -> None:
        self.lexical = lexical
        self.semantic = semantic

    def search(
        self,
        *,
        query: str,
        filters: SearchFilters | None = None,
        limit: int = 20,
        bm25_weight: float = 0.6,
        semantic_weight: float = 0.4,
        rrf_k: int = DEFAULT_RRF_K,
        similarity_threshold: float = 0.3,
    ) -> HybridSearchResult:
        normalized_limit = max(limit, 1)
        candidate_limit = normalized_limit * 2
        effective_filters = filters or SearchFilters()

        outcomes = settle_all(
            {
                "lexical": lambda: self.lexical.search(
                    query=query,
                    filters=effective_filters,
                    limit=candidate_limit,
                ),
                "semantic": lambda: self.semantic.search(
                    query=query,
                    filters=effective_filters,
                    limit=candidate_limit,
                    similarity_threshold=similarity_threshold,
                ),
            }
        )
        lexical_outcome = outcomes["lexical"]
        semantic_outcome = outcomes["semantic"]

        if not lexical_outcome.ok and not semantic_outcome.ok:
            raise SearchUnavailableError(
                "Both lexical and semantic search failed",
                cause=semantic_outcome.error,
                context={
                    "lexical_error": str(lexical_outcome.error),
                    "semantic_error": str(semantic_outcome.error),
                },
            )

        lexical_hits: list[LexicalHit] = []
        if lexical_outcome.ok:
            lexical_hits = lexical_outcome.value
        else:
            logger.warning(
                "Lexical branch failed, using semantic results only: %s",
                lexical_outcome.error,
            )

        semantic_hits: list[SemanticHit] = []
        embedding_cost = 0.0
        if semantic_outcome.ok:
            semantic_hits = semantic_outcome.value.hits
            embedding_cost = semantic_outcome.value.embedding_cost_usd
        else:
            logger.warning(
                "Semantic branch failed, using lexical results only: %s",
                semantic_outcome.error,
            )

        fused = fuse_rankings(
            lexical_hits=lexical_hits,
            semantic_hits=semantic_hits,
            bm25_weight=bm25_weight,
            semantic_weight=semantic_weight,
            rrf_k=rrf_k,
            limit=normalized_limit,
        )
        return HybridSearchResult(
            results=fused,
            lexical_count=len(lexical_hits),
            semantic_count=len(semantic_hits),
            embedding_cost_usd=embedding_cost,
            lexical_error=lexical_outcome.error,
            semantic_error=semantic_outcome.error,
        )
