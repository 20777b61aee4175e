"""
Embedding generation for saved bookmarks.

``run_batch`` is the out-of-band backfill: it embeds documents that have no
vector from the current model in one batched call. Spend caps are checked
once per batch rather than per document, so a batch that starts just under a
cap may finish slightly over it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..embeddings import EmbeddingProvider
from ..exceptions import DocumentNotFoundError, ModelUnavailableError, ValidationError
from ..ledger import CostLedger
from ..logging_config import get_logger
from ..models import MAX_BATCH_LIMIT
from ..storage import CostRecord, Document, StorageBackend

BODY_PREFIX_CHARS = 1000

logger = get_logger("indexing.backfill")


def build_embedding_text(document: Document) -> str:
    """Title, summary and the head of the body, joined with `` | ``."""
    parts = [document.title, document.summary, document.body[:BODY_PREFIX_CHARS]]
    return " | ".join(part for part in parts if part)


@dataclass(frozen=True)
class BackfillResult:
    """Summary output for one backfill batch."""

    processed: int
    successful: int
    failed: int
    total_cost_usd: float
    remaining_count: int
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class DocumentEmbeddingResult:
    document_id: str
    dimensions: int
    tokens: int
    cost_usd: float


class EmbeddingIndexer:
    """Write document embeddings and account for their cost."""

    def __init__(
        self,
        storage: StorageBackend,
        embedding_provider: EmbeddingProvider,
        ledger: CostLedger,
    ) -> None:
        self.storage = storage
        self.embedding_provider = embedding_provider
        self.ledger = ledger

    def run_batch(self, *, limit: int = 10, offset: int = 0) -> BackfillResult:
        """Embed up to *limit* un-embedded documents starting at *offset*.

        Documents that already carry a current-model vector are never
        selected, so re-running with the same arguments cannot embed a
        document twice. Per-document write failures are collected in
        ``errors`` instead of aborting the batch.
        """
        if limit < 1 or limit > MAX_BATCH_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_BATCH_LIMIT}")
        if offset < 0:
            raise ValidationError("offset must be >= 0")

        provider = self.embedding_provider
        documents = self.storage.list_documents_missing_embedding(
            embedding_model=provider.model,
            limit=limit,
            offset=offset,
        )
        missing_before = self.storage.count_documents_missing_embedding(
            embedding_model=provider.model
        )
        if not documents:
            return BackfillResult(
                processed=0,
                successful=0,
                failed=0,
                total_cost_usd=0.0,
                remaining_count=missing_before,
            )

        texts = [build_embedding_text(document) for document in documents]
        self.ledger.ensure_can_spend(estimated_cost=provider.estimate_cost(texts))

        try:
            batch = provider.embed_batch(texts, task_type="RETRIEVAL_DOCUMENT")
        except ModelUnavailableError as exc:
            logger.warning("Embedding batch of %d documents failed: %s", len(documents), exc)
            self.ledger.record(
                CostRecord.failure(
                    model=provider.model,
                    request_type="embedding_batch",
                    error_message=str(exc),
                )
            )
            return BackfillResult(
                processed=len(documents),
                successful=0,
                failed=len(documents),
                total_cost_usd=0.0,
                remaining_count=missing_before,
                errors=[f"Batch processing failed: {exc}"],
            )

        cost = provider.cost_for(batch.total_token_count)
        successful = 0
        failed = 0
        errors: list[str] = []
        for document, vector in zip(documents, batch.vectors):
            try:
                if len(vector) != provider.dim:
                    raise ValueError(
                        f"expected {provider.dim} dimensions, got {len(vector)}"
                    )
                self.storage.store_document_embedding(
                    document_id=document.id,
                    embedding=vector,
                    embedding_model=provider.model,
                )
                successful += 1
            except Exception as exc:
                failed += 1
                errors.append(f"Document {document.id}: {exc}")
                logger.warning("Failed to store embedding for %s: %s", document.id, exc)

        self.ledger.record(
            CostRecord(
                model=provider.model,
                request_type="embedding_batch",
                prompt_tokens=batch.total_token_count,
                total_tokens=batch.total_token_count,
                cost_usd=cost,
            )
        )
        logger.info(
            "Backfill batch: %d processed, %d stored, %d failed, %.8f USD",
            len(documents),
            successful,
            failed,
            cost,
        )
        return BackfillResult(
            processed=len(documents),
            successful=successful,
            failed=failed,
            total_cost_usd=cost,
            remaining_count=max(missing_before - successful, 0),
            errors=errors,
        )

    def embed_document(
        self,
        *,
        document_id: str,
        batch: bool = False,
    ) -> DocumentEmbeddingResult:
        """Embed a single document and store its vector.

        The spend-cap check is skipped when *batch* is set, since batch
        callers check once for the whole batch.
        """
        document = self.storage.get_document(document_id=document_id)
        if document is None:
            raise DocumentNotFoundError(
                f"Document not found: {document_id}",
                context={"document_id": document_id},
            )
        text = build_embedding_text(document)
        if not text.strip():
            raise ValidationError(
                "Document has no text to embed",
                context={"document_id": document_id},
            )

        provider = self.embedding_provider
        if not batch:
            self.ledger.ensure_can_spend(estimated_cost=provider.estimate_cost([text]))

        try:
            embedded = provider.embed(text, task_type="RETRIEVAL_DOCUMENT")
            if len(embedded.vector) != provider.dim:
                raise ModelUnavailableError(
                    f"Embedding model returned {len(embedded.vector)} dimensions, "
                    f"expected {provider.dim}",
                    context={"document_id": document_id},
                )
        except ModelUnavailableError as exc:
            self.ledger.record(
                CostRecord.failure(
                    model=provider.model,
                    request_type="embedding",
                    error_message=str(exc),
                    document_id=document_id,
                )
            )
            raise

        cost = provider.cost_for(embedded.token_count)
        self.ledger.record(
            CostRecord(
                model=provider.model,
                request_type="embedding",
                prompt_tokens=embedded.token_count,
                total_tokens=embedded.token_count,
                cost_usd=cost,
                document_id=document_id,
            )
        )
        self.storage.store_document_embedding(
            document_id=document_id,
            embedding=embedded.vector,
            embedding_model=provider.model,
        )
        return DocumentEmbeddingResult(
            document_id=document_id,
            dimensions=len(embedded.vector),
            tokens=embedded.token_count,
            cost_usd=cost,
        )
