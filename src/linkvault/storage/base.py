"""
Storage interfaces and data models for bookmark and cost persistence.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal, Protocol, TypeAlias

RequestType: TypeAlias = Literal[
    "embedding", "embedding_batch", "search_embedding", "chat"
]
EnrichmentStatus: TypeAlias = Literal["pending", "processing", "done", "failed"]


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class Document:
    """A saved bookmark as the search core sees it."""

    id: str
    url: str
    title: str
    summary: str = ""
    body: str = ""
    category: str = "other"
    source_type: str = "other"
    tags: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    embedding: list[float] | None = None
    embedding_model: str | None = None
    archived: bool = False
    llm_status: EnrichmentStatus = "pending"
    llm_error: str | None = None

    @property
    def display_title(self) -> str:
        return self.title or self.url


@dataclass(frozen=True)
class CostRecord:
    """One metered model call. Append-only: never updated or deleted."""

    model: str
    request_type: RequestType
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost_usd: float = 0.0
    success: bool = True
    error_message: str | None = None
    document_id: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def failure(
        cls,
        *,
        model: str,
        request_type: RequestType,
        error_message: str,
        document_id: str | None = None,
    ) -> "CostRecord":
        """Zero-cost record for a failed external call."""
        return cls(
            model=model,
            request_type=request_type,
            success=False,
            error_message=error_message,
            document_id=document_id,
        )


@dataclass(frozen=True)
class SearchFilters:
    """Optional equality filters shared by every search mode."""

    category: str | None = None
    source_type: str | None = None


class StorageBackend(Protocol):
    """Protocol for the persistence operations used by search, embedding and cost tracking."""

    def initialize(self) -> None:
        """Initialize required tables."""

    def upsert_document(self, document: Document) -> None:
        """Insert or update a document, leaving any stored embedding untouched."""

    def get_document(self, *, document_id: str) -> Document | None:
        """Get a document by id."""

    def search_documents_text(
        self,
        *,
        query: str,
        filters: SearchFilters,
        limit: int,
        archived: bool | None = None,
    ) -> list[Document]:
        """Case-insensitive substring match over title, summary and body, newest first.

        Archived documents are excluded unless *archived* asks for them;
        ``archived=True`` returns only archived documents.
        """

    def list_embedded_documents(
        self,
        *,
        embedding_model: str,
        filters: SearchFilters,
    ) -> list[Document]:
        """Return every filtered document holding a vector from *embedding_model*."""

    def list_documents_missing_embedding(
        self,
        *,
        embedding_model: str,
        limit: int,
        offset: int = 0,
    ) -> list[Document]:
        """Return documents without a vector from *embedding_model*, oldest first."""

    def count_documents_missing_embedding(self, *, embedding_model: str) -> int:
        """Count documents without a vector from *embedding_model*."""

    def store_document_embedding(
        self,
        *,
        document_id: str,
        embedding: list[float],
        embedding_model: str,
    ) -> None:
        """Persist a document vector. Raise KeyError when the document is missing."""

    def update_document_enrichment(
        self,
        *,
        document_id: str,
        summary: str,
        category: str,
        tags: list[str],
    ) -> None:
        """Persist LLM-generated summary, category and tags and mark enrichment done."""

    def set_enrichment_status(
        self,
        *,
        document_id: str,
        status: EnrichmentStatus,
        error: str | None = None,
    ) -> None:
        """Record the enrichment state of a document and the last failure, if any."""

    def insert_cost_record(self, record: CostRecord) -> None:
        """Append a cost record."""

    def sum_costs(self, *, start: datetime, end: datetime) -> tuple[float, int]:
        """Return (total cost_usd, record count) for start <= created_at < end."""

    def cost_breakdown_by_model(
        self, *, start: datetime, end: datetime
    ) -> list[dict[str, Any]]:
        """Aggregate request count, tokens and cost per model inside the window."""

    def recent_cost_records(self, *, limit: int = 10) -> list[CostRecord]:
        """Most recent cost records, newest first."""
