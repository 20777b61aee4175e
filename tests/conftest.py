from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

import pytest
from google.genai.types import (
    Candidate,
    Content,
    ContentEmbedding,
    ContentEmbeddingStatistics,
    EmbedContentResponse,
    GenerateContentResponse,
    GenerateContentResponseUsageMetadata,
    Part,
)

from linkvault.embeddings import EmbeddingProvider
from linkvault.ledger import CostLedger
from linkvault.storage import Document, DuckDBStorage

TEST_EMBEDDING_MODEL = "test-embedding"
TEST_DIM = 3
BASE_TIME = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class MockEmbedModels:
    """Stand-in for ``client.models`` that answers ``embed_content``."""

    def __init__(
        self,
        vectors: dict[str, list[float]] | None = None,
        *,
        default: list[float] | None = None,
        token_count: int | None = 5,
        error: Exception | None = None,
    ) -> None:
        self.vectors = vectors or {}
        self.default = default if default is not None else [1.0, 0.0, 0.0]
        self.token_count = token_count
        self.error = error
        self.calls: list[dict] = []

    def embed_content(self, *, model, contents, config=None) -> EmbedContentResponse:
        self.calls.append({"model": model, "contents": list(contents), "config": config})
        if self.error is not None:
            raise self.error
        statistics = (
            ContentEmbeddingStatistics(token_count=self.token_count)
            if self.token_count is not None
            else None
        )
        return EmbedContentResponse(
            embeddings=[
                ContentEmbedding(
                    values=self.vectors.get(text, self.default),
                    statistics=statistics,
                )
                for text in contents
            ]
        )


class MockChatModels:
    """Stand-in for ``client.models`` that answers ``generate_content``."""

    def __init__(
        self,
        text: str | None = None,
        *,
        prompt_tokens: int = 400,
        completion_tokens: int = 60,
        error: Exception | None = None,
    ) -> None:
        self.text = text
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.error = error
        self.calls: list[dict] = []

    def generate_content(self, *, model, contents, config=None) -> GenerateContentResponse:
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.error is not None:
            raise self.error
        return GenerateContentResponse(
            candidates=[
                Candidate(
                    content=Content(role="model", parts=[Part.from_text(text=self.text)])
                )
            ],
            usage_metadata=GenerateContentResponseUsageMetadata(
                prompt_token_count=self.prompt_tokens,
                candidates_token_count=self.completion_tokens,
                total_token_count=self.prompt_tokens + self.completion_tokens,
            ),
        )


class MockGenAIClient:
    def __init__(self, models) -> None:
        self.models = models


def make_document(
    doc_id: str,
    *,
    title: str = "",
    summary: str = "",
    body: str = "",
    category: str = "tech",
    source_type: str = "article",
    age_minutes: int = 0,
    embedding: list[float] | None = None,
    embedding_model: str | None = TEST_EMBEDDING_MODEL,
    archived: bool = False,
) -> Document:
    return Document(
        id=doc_id,
        url=f"https://example.com/{doc_id}",
        title=title or doc_id,
        summary=summary,
        body=body,
        category=category,
        source_type=source_type,
        created_at=BASE_TIME - timedelta(minutes=age_minutes),
        embedding=embedding,
        embedding_model=embedding_model if embedding is not None else None,
        archived=archived,
    )


@pytest.fixture()
def storage():
    db = DuckDBStorage(":memory:")
    yield db
    db.close()


@pytest.fixture()
def ledger(storage) -> CostLedger:
    return CostLedger(storage, daily_limit_usd=1.0, monthly_limit_usd=30.0)


@pytest.fixture()
def embed_models() -> MockEmbedModels:
    return MockEmbedModels()


@pytest.fixture()
def provider(embed_models) -> EmbeddingProvider:
    return EmbeddingProvider(
        model=TEST_EMBEDDING_MODEL,
        dim=TEST_DIM,
        cost_per_mtok=0.15,
        client=MockGenAIClient(embed_models),
    )


@pytest.fixture(autouse=True)
def reset_linkvault_logger():
    yield
    logging.getLogger("linkvault").handlers.clear()
