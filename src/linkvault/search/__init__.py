"""Search engines for saved bookmarks."""

from .hybrid import BranchOutcome, HybridSearchEngine, HybridSearchResult, settle_all
from .lexical import LexicalHit, LexicalSearchEngine, normalized_rank
from .ranker import DEFAULT_RRF_K, FusedDocument, fuse_rankings, rrf_score
from .semantic import (
    SemanticHit,
    SemanticSearchEngine,
    SemanticSearchResult,
    cosine_similarity,
)

__all__ = [
    "BranchOutcome",
    "HybridSearchEngine",
    "HybridSearchResult",
    "settle_all",
    "LexicalHit",
    "LexicalSearchEngine",
    "normalized_rank",
    "DEFAULT_RRF_K",
    "FusedDocument",
    "fuse_rankings",
    "rrf_score",
    "SemanticHit",
    "SemanticSearchEngine",
    "SemanticSearchResult",
    "cosine_similarity",
]
