"""
Embedding client for vector-based semantic search.

Wraps a single Google GenAI embedding call (one text or one batch) and returns
vectors plus the token count used for cost accounting. It never checks spend
caps and never persists anything; callers own both concerns.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from typing import Any

from google.genai import Client as GenAIClient

from .config import (
    DEFAULT_EMBEDDING_DIM,
    DEFAULT_EMBEDDING_MODEL,
    resolve_embedding_cost_per_mtok,
)
from .exceptions import ModelUnavailableError
from .logging_config import get_logger

logger = get_logger("embeddings")

# Roughly 8k tokens; only the head of longer texts is embedded.
MAX_INPUT_CHARS = 32000
# Used when the API does not report per-item token statistics.
CHARS_PER_TOKEN_ESTIMATE = 4


def truncate_text(text: str, max_chars: int = MAX_INPUT_CHARS) -> str:
    return text if len(text) <= max_chars else text[:max_chars]


def estimate_tokens(text: str) -> int:
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN_ESTIMATE)


@dataclass(frozen=True)
class EmbeddingResult:
    vector: list[float]
    token_count: int


@dataclass(frozen=True)
class BatchEmbeddingResult:
    vectors: list[list[float]]
    total_token_count: int


class EmbeddingProvider:
    """Generate text embeddings via Google GenAI."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        dim: int | None = None,
        cost_per_mtok: float | None = None,
        client: Any | None = None,
    ) -> None:
        self.model = model or os.getenv("LINKVAULT_EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL)
        self.dim = dim or int(os.getenv("LINKVAULT_EMBEDDING_DIM", str(DEFAULT_EMBEDDING_DIM)))
        self.cost_per_mtok = resolve_embedding_cost_per_mtok(cost_per_mtok)

        if client is not None:
            self._client = client
        else:
            resolved_key = api_key or os.getenv("GOOGLE_API_KEY")
            if resolved_key is None:
                raise ValueError(
                    "GOOGLE_API_KEY not found. "
                    "Provide api_key or set the environment variable."
                )
            self._client = GenAIClient(api_key=resolved_key)

    def cost_for(self, tokens: int) -> float:
        """Price *tokens* input tokens in USD."""
        return tokens * self.cost_per_mtok / 1_000_000

    def estimate_cost(self, texts: list[str]) -> float:
        """Pre-call cost estimate used for spend-cap checks."""
        return self.cost_for(sum(estimate_tokens(truncate_text(t)) for t in texts))

    def embed(self, text: str, *, task_type: str = "RETRIEVAL_QUERY") -> EmbeddingResult:
        """Embed a single text."""
        batch = self._embed_contents([truncate_text(text)], task_type=task_type)
        return EmbeddingResult(vector=batch.vectors[0], token_count=batch.total_token_count)

    def embed_batch(
        self,
        texts: list[str],
        *,
        task_type: str = "RETRIEVAL_DOCUMENT",
    ) -> BatchEmbeddingResult:
        """Embed *texts* in one call. Vectors come back in input order."""
        if not texts:
            return BatchEmbeddingResult(vectors=[], total_token_count=0)
        return self._embed_contents(
            [truncate_text(text) for text in texts], task_type=task_type
        )

    def _embed_contents(self, contents: list[str], *, task_type: str) -> BatchEmbeddingResult:
        try:
            result = self._client.models.embed_content(
                model=self.model,
                contents=contents,
                config={
                    "task_type": task_type,
                    "output_dimensionality": self.dim,
                },
            )
        except Exception as exc:
            raise ModelUnavailableError(
                f"Embedding request to {self.model} failed: {exc}",
                cause=exc,
                context={"model": self.model, "inputs": len(contents)},
            ) from exc

        embeddings = list(getattr(result, "embeddings", None) or [])
        if len(embeddings) != len(contents):
            raise ModelUnavailableError(
                f"Embedding response from {self.model} returned {len(embeddings)} "
                f"vectors for {len(contents)} inputs",
                context={"model": self.model},
            )

        vectors: list[list[float]] = []
        for emb in embeddings:
            values = getattr(emb, "values", None)
            if not values:
                raise ModelUnavailableError(
                    f"Embedding response from {self.model} contained an empty vector",
                    context={"model": self.model},
                )
            vectors.append([float(v) for v in values])

        tokens = self._token_count(embeddings, contents)
        logger.debug("Embedded %d text(s) with %s (%d tokens)", len(contents), self.model, tokens)
        return BatchEmbeddingResult(vectors=vectors, total_token_count=tokens)

    @staticmethod
    def _token_count(embeddings: list[Any], contents: list[str]) -> int:
        total = 0
        for emb, text in zip(embeddings, contents):
            statistics = getattr(emb, "statistics", None)
            token_count = getattr(statistics, "token_count", None)
            if token_count is not None:
                total += int(token_count)
            else:
                total += estimate_tokens(text)
        return total
