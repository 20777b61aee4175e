"""
Reciprocal Rank Fusion for merging lexical and semantic result sets.

RRF only looks at positions, so the two branches never need their scores
calibrated against each other (substring matches have no score at all, cosine
similarities live in [-1, 1]).
"""

from __future__ import annotations

from dataclasses import dataclass

from ..storage import Document
from .lexical import LexicalHit
from .semantic import SemanticHit

DEFAULT_RRF_K = 60


def rrf_score(rank: int, k: int = DEFAULT_RRF_K) -> float:
    """RRF contribution of a 1-based *rank*: ``1 / (k + rank)``."""
    if rank < 1:
        raise ValueError(f"rank must be >= 1, got {rank}")
    if k <= 0:
        raise ValueError(f"k must be > 0, got {k}")
    return 1.0 / (k + rank)


@dataclass(frozen=True)
class FusedDocument:
    """Merged retrieval candidate for a document."""

    document: Document
    lexical_rank: int | None
    semantic_rank: int | None
    semantic_score: float | None
    lexical_rrf: float
    semantic_rrf: float
    hybrid_score: float

    @property
    def rrf_score(self) -> float:
        return self.lexical_rrf + self.semantic_rrf

    @property
    def matched_by(self) -> str:
        if self.lexical_rank is not None and self.semantic_rank is not None:
            return "lexical+semantic"
        if self.semantic_rank is not None:
            return "semantic"
        return "lexical"


def fuse_rankings(
    *,
    lexical_hits: list[LexicalHit],
    semantic_hits: list[SemanticHit],
    bm25_weight: float = 0.6,
    semantic_weight: float = 0.4,
    rrf_k: int = DEFAULT_RRF_K,
    limit: int,
) -> list[FusedDocument]:
    """Merge both branch lists and order them by weighted RRF score.

    A document missing from one branch contributes 0 for that branch. Ties
    are broken by total RRF score, then recency, then id, so identical inputs
    always produce the same order.
    """
    merged: dict[str, dict] = {}

    for position, hit in enumerate(lexical_hits, start=1):
        entry = merged.setdefault(
            hit.document.id,
            {
                "document": hit.document,
                "lexical_rank": None,
                "semantic_rank": None,
                "semantic_score": None,
            },
        )
        if entry["lexical_rank"] is None:
            entry["lexical_rank"] = position

    for position, hit in enumerate(semantic_hits, start=1):
        entry = merged.setdefault(
            hit.document.id,
            {
                "document": hit.document,
                "lexical_rank": None,
                "semantic_rank": None,
                "semantic_score": None,
            },
        )
        if entry["semantic_rank"] is None:
            entry["semantic_rank"] = position
            entry["semantic_score"] = hit.score

    fused: list[FusedDocument] = []
    for entry in merged.values():
        lexical_rrf = (
            rrf_score(entry["lexical_rank"], rrf_k)
            if entry["lexical_rank"] is not None
            else 0.0
        )
        semantic_rrf = (
            rrf_score(entry["semantic_rank"], rrf_k)
            if entry["semantic_rank"] is not None
            else 0.0
        )
        fused.append(
            FusedDocument(
                document=entry["document"],
                lexical_rank=entry["lexical_rank"],
                semantic_rank=entry["semantic_rank"],
                semantic_score=entry["semantic_score"],
                lexical_rrf=lexical_rrf,
                semantic_rrf=semantic_rrf,
                hybrid_score=bm25_weight * lexical_rrf + semantic_weight * semantic_rrf,
            )
        )

    ordered = sorted(
        fused,
        key=lambda doc: (
            -doc.hybrid_score,
            -doc.rrf_score,
            -doc.document.created_at.timestamp(),
            doc.document.id,
        ),
    )
    return ordered[: max(limit, 1)]
