"""
Keyword search over saved bookmarks.

A document matches when the query appears, case-insensitively, as a substring
of its title, summary or body. There is no term weighting, so matches are
ordered newest first. An inverted-index scorer would instead sort by
descending relevance with recency as the tie-break.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..storage import Document, SearchFilters, StorageBackend


@dataclass(frozen=True)
class LexicalHit:
    """A keyword match and its 1-based position in the result list."""

    document: Document
    position: int

    @property
    def document_id(self) -> str:
        return self.document.id


def normalized_rank(position: int, total: int) -> float:
    """Map a 1-based position onto (0, 1], with 1.0 for the top hit."""
    if total <= 0 or position < 1:
        return 0.0
    return 1.0 - (position - 1) / total


class LexicalSearchEngine:
    """Substring search backed by the document store. Read-only."""

    def __init__(self, storage: StorageBackend) -> None:
        self.storage = storage

    def search(
        self,
        *,
        query: str,
        filters: SearchFilters | None = None,
        limit: int = 20,
        archived: bool | None = None,
    ) -> list[LexicalHit]:
        """Matching documents, newest first. Archived bookmarks are skipped unless requested."""
        normalized_limit = max(limit, 1)
        documents = self.storage.search_documents_text(
            query=query,
            filters=filters or SearchFilters(),
            limit=normalized_limit,
            archived=archived,
        )
        return [
            LexicalHit(document=document, position=position)
            for position, document in enumerate(documents[:normalized_limit], start=1)
        ]
