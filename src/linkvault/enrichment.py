"""
LLM enrichment for saved bookmarks: summary, category and tags.

A document's ``llm_status`` moves to ``processing`` once the spend check
passes, then to ``done`` or to ``failed`` with the error kept in ``llm_error``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

from google.genai import Client as GenAIClient
from pydantic import ValidationError as PydanticValidationError

from .config import DEFAULT_CHAT_MODEL, resolve_chat_pricing
from .embeddings import estimate_tokens
from .exceptions import DocumentNotFoundError, ModelUnavailableError
from .ledger import CostLedger
from .logging_config import get_logger
from .models import BookmarkEnrichment
from .storage import CostRecord, Document, StorageBackend

BODY_PROMPT_CHARS = 8000
MAX_OUTPUT_TOKENS = 500

SYSTEM_PROMPT = """
You are an assistant that analyzes saved web pages for a personal bookmark library.

For every page you receive, produce:

- `summary`: a concise 2-3 sentence summary of what the page is about
- `category`: exactly one of `tech`, `news`, `blog`, `video`, `other`
- `tags`: up to 5 short, lowercase topical tags

Base your answer only on the URL, title and content provided.
"""

logger = get_logger("enrichment")


@dataclass(frozen=True)
class EnrichmentResult:
    document_id: str
    enrichment: BookmarkEnrichment
    cost_usd: float


def build_prompt(document: Document) -> str:
    return (
        f"URL: {document.url}\n"
        f"Title: {document.display_title}\n"
        f"Content:\n{document.body[:BODY_PROMPT_CHARS]}"
    )


class BookmarkEnricher:
    def __init__(
        self,
        storage: StorageBackend,
        ledger: CostLedger,
        *,
        api_key: str | None = None,
        model: str | None = None,
        input_cost_per_mtok: float | None = None,
        output_cost_per_mtok: float | None = None,
        client: Any | None = None,
    ):
        self.storage = storage
        self.ledger = ledger
        self.model = model or os.getenv("LINKVAULT_CHAT_MODEL", DEFAULT_CHAT_MODEL)
        self.input_cost_per_mtok, self.output_cost_per_mtok = resolve_chat_pricing(
            input_cost_per_mtok, output_cost_per_mtok
        )
        if client is not None:
            self._client = client
        else:
            resolved_key = api_key or os.getenv("GOOGLE_API_KEY")
            if resolved_key is None:
                raise ValueError(
                    "GOOGLE_API_KEY not found within the current environment: "
                    "please export it or provide it to the class constructor."
                )
            self._client = GenAIClient(api_key=resolved_key)

    def cost_for(self, prompt_tokens: int, completion_tokens: int) -> float:
        return (
            prompt_tokens * self.input_cost_per_mtok
            + completion_tokens * self.output_cost_per_mtok
        ) / 1_000_000

    def enrich(self, *, document_id: str) -> EnrichmentResult:
        document = self.storage.get_document(document_id=document_id)
        if document is None:
            raise DocumentNotFoundError(
                f"Document not found: {document_id}",
                context={"document_id": document_id},
            )

        prompt = build_prompt(document)
        self.ledger.ensure_can_spend(
            estimated_cost=self.cost_for(
                estimate_tokens(SYSTEM_PROMPT + prompt), MAX_OUTPUT_TOKENS
            )
        )

        self.storage.set_enrichment_status(document_id=document_id, status="processing")
        try:
            enrichment, prompt_tokens, completion_tokens = self._generate(prompt)
        except ModelUnavailableError as exc:
            self.ledger.record(
                CostRecord.failure(
                    model=self.model,
                    request_type="chat",
                    error_message=str(exc),
                    document_id=document_id,
                )
            )
            self.storage.set_enrichment_status(
                document_id=document_id, status="failed", error=str(exc)
            )
            logger.warning("Enrichment of %s failed: %s", document_id, exc)
            exc.context.update({"document_id": document_id, "status": "failed"})
            raise

        cost = self.cost_for(prompt_tokens, completion_tokens)
        self.ledger.record(
            CostRecord(
                model=self.model,
                request_type="chat",
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
                cost_usd=cost,
                document_id=document_id,
            )
        )
        self.storage.update_document_enrichment(
            document_id=document_id,
            summary=enrichment.summary,
            category=enrichment.category,
            tags=enrichment.tags,
        )
        logger.info(
            "Enriched %s as %s with %d tags",
            document_id,
            enrichment.category,
            len(enrichment.tags),
        )
        return EnrichmentResult(document_id=document_id, enrichment=enrichment, cost_usd=cost)

    def _generate(self, prompt: str) -> tuple[BookmarkEnrichment, int, int]:
        try:
            response = self._client.models.generate_content(
                model=self.model,
                contents=prompt,
                config={
                    "system_instruction": SYSTEM_PROMPT,
                    "response_mime_type": "application/json",
                    "response_json_schema": BookmarkEnrichment.model_json_schema(),
                    "temperature": 0.3,
                    "max_output_tokens": MAX_OUTPUT_TOKENS,
                },
            )
        except Exception as exc:
            raise ModelUnavailableError(
                f"Chat request to {self.model} failed: {exc}",
                cause=exc,
                context={"model": self.model},
            ) from exc

        if response.text is None:
            raise ModelUnavailableError(
                f"Chat response from {self.model} had no text",
                context={"model": self.model},
            )
        try:
            enrichment = BookmarkEnrichment.model_validate_json(response.text)
        except PydanticValidationError as exc:
            raise ModelUnavailableError(
                f"Chat response from {self.model} did not match the enrichment schema",
                cause=exc,
                context={"model": self.model},
            ) from exc

        usage = getattr(response, "usage_metadata", None)
        prompt_tokens = int(getattr(usage, "prompt_token_count", None) or 0)
        completion_tokens = int(getattr(usage, "candidates_token_count", None) or 0)
        return enrichment, prompt_tokens, completion_tokens
