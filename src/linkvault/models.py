"""Request and response models for the search, embedding and cost operations."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, TypeAlias

from pydantic import BaseModel, Field, field_validator

from .storage import SearchFilters

MAX_SEARCH_LIMIT = 100
MAX_BATCH_LIMIT = 50
MAX_TAGS = 5

Category: TypeAlias = Literal["tech", "news", "blog", "video", "other"]


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class SearchRequest(BaseModel):
    """Fields shared by every search mode."""

    query: str = Field(description="Search text; blank queries are rejected")
    limit: int = Field(default=20, ge=1, le=MAX_SEARCH_LIMIT)
    category: str | None = None
    source_type: str | None = None

    @field_validator("query")
    @classmethod
    def query_not_blank(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Query is required")
        return stripped

    def filters(self) -> SearchFilters:
        return SearchFilters(category=self.category, source_type=self.source_type)


class LexicalSearchRequest(SearchRequest):
    """Keyword search over title, summary and body."""

    archived: bool | None = Field(
        default=None,
        description="Search archived bookmarks instead of active ones; omitted means active only",
    )


class SemanticSearchRequest(SearchRequest):
    """Vector search; only scores strictly above the threshold are returned."""

    similarity_threshold: float = Field(default=0.7, ge=-1.0, le=1.0)


class HybridSearchRequest(SearchRequest):
    """Lexical + semantic search fused with Reciprocal Rank Fusion."""

    bm25_weight: float = Field(default=0.6, ge=0.0)
    semantic_weight: float = Field(default=0.4, ge=0.0)
    rrf_k: int = Field(default=60, gt=0)
    similarity_threshold: float = Field(default=0.3, ge=-1.0, le=1.0)


class BackfillRequest(BaseModel):
    """Embed documents that have no vector yet."""

    limit: int = Field(default=10, ge=1, le=MAX_BATCH_LIMIT)
    offset: int = Field(default=0, ge=0)


class EmbedDocumentRequest(BaseModel):
    document_id: str = Field(min_length=1)
    batch: bool = Field(
        default=False,
        description="Batch callers check spend caps once per batch, so the per-call check is skipped",
    )


class EnrichDocumentRequest(BaseModel):
    document_id: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Search responses
# ---------------------------------------------------------------------------


class SearchResultItem(BaseModel):
    id: str
    url: str
    title: str
    summary: str
    category: str
    source_type: str
    tags: list[str]
    created_at: datetime


class LexicalResultItem(SearchResultItem):
    rank: float = Field(description="Normalized position in (0, 1]; 1.0 is the first hit")


class SemanticResultItem(SearchResultItem):
    similarity_score: float


class HybridResultItem(SearchResultItem):
    hybrid_score: float
    rrf_score: float
    bm25_rank: int | None = None
    semantic_score: float | None = None


class LexicalSearchInfo(BaseModel):
    method: Literal["bm25_fulltext"] = "bm25_fulltext"
    query_terms: list[str]


class LexicalSearchResponse(BaseModel):
    results: list[LexicalResultItem]
    query: str
    total_results: int
    processing_time_ms: int
    search_info: LexicalSearchInfo


class SemanticSearchResponse(BaseModel):
    results: list[SemanticResultItem]
    query: str
    total_results: int
    processing_time_ms: int
    embedding_cost_usd: float


class HybridSearchInfo(BaseModel):
    method: Literal["hybrid_rrf"] = "hybrid_rrf"
    bm25_results: int
    semantic_results: int
    bm25_weight: float
    semantic_weight: float
    rrf_k: int


class HybridSearchResponse(BaseModel):
    results: list[HybridResultItem]
    query: str
    total_results: int
    processing_time_ms: int
    search_info: HybridSearchInfo


# ---------------------------------------------------------------------------
# Embedding / enrichment responses
# ---------------------------------------------------------------------------


class BackfillResponse(BaseModel):
    processed: int
    successful: int
    failed: int
    total_cost_usd: float
    remaining_count: int
    errors: list[str]


class EmbedDocumentResponse(BaseModel):
    document_id: str
    dimensions: int
    tokens: int
    cost_usd: float
    success: bool = True


class BookmarkEnrichment(BaseModel):
    """Summary, category and tags generated for a saved bookmark"""

    summary: str = Field(description="Concise 2-3 sentence summary of the page")
    category: Category = Field(description="One of tech, news, blog, video, other")
    tags: list[str] = Field(description=f"Relevant tags, at most {MAX_TAGS}")

    @field_validator("tags")
    @classmethod
    def trim_tags(cls, value: list[str]) -> list[str]:
        cleaned = [tag.strip() for tag in value if tag.strip()]
        return cleaned[:MAX_TAGS]


class EnrichmentResponse(BaseModel):
    document_id: str
    summary: str
    category: Category
    tags: list[str]
    cost_usd: float
    status: Literal["done"] = "done"


# ---------------------------------------------------------------------------
# Cost summary
# ---------------------------------------------------------------------------


class DailyCosts(BaseModel):
    date: str
    total_cost_usd: float
    request_count: int
    limit_usd: float
    remaining_usd: float
    percentage_used: float


class MonthlyCosts(BaseModel):
    month: str
    total_cost_usd: float
    request_count: int
    limit_usd: float
    remaining_usd: float
    percentage_used: float


class ModelCostBreakdown(BaseModel):
    model: str
    request_count: int
    total_tokens: int
    total_cost_usd: float


class RecentCostRequest(BaseModel):
    id: str
    document_id: str | None
    model: str
    request_type: str
    tokens: int
    cost_usd: float
    created_at: datetime
    success: bool


class CostLimits(BaseModel):
    daily_limit_usd: float
    monthly_limit_usd: float
    daily_reached: bool
    monthly_reached: bool
    can_process: bool


class CostSummaryResponse(BaseModel):
    daily: DailyCosts
    monthly: MonthlyCosts
    breakdown_by_model: list[ModelCostBreakdown]
    recent_requests: list[RecentCostRequest]
    limits: CostLimits
