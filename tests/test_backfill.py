"""Tests for batch backfill and single-document embedding."""

from __future__ import annotations

import pytest

from conftest import (
    TEST_DIM,
    TEST_EMBEDDING_MODEL,
    MockEmbedModels,
    MockGenAIClient,
    make_document,
)
from linkvault.embeddings import EmbeddingProvider
from linkvault.exceptions import (
    CostLimitReachedError,
    DocumentNotFoundError,
    ModelUnavailableError,
    ValidationError,
)
from linkvault.indexing import EmbeddingIndexer, build_embedding_text
from linkvault.storage import CostRecord, Document


def _seed(storage, count: int) -> None:
    for i in range(count):
        storage.upsert_document(
            make_document(f"doc{i}", title=f"Bookmark {i}", age_minutes=count - i)
        )


def test_build_embedding_text_joins_non_empty_parts() -> None:
    doc = Document(id="a", url="https://a", title="Title", summary="", body="B" * 1500)

    text = build_embedding_text(doc)

    assert text == "Title | " + "B" * 1000


def test_run_batch_embeds_oldest_first_and_records_one_cost(storage, ledger, provider, embed_models) -> None:
    _seed(storage, 3)
    indexer = EmbeddingIndexer(storage, provider, ledger)

    result = indexer.run_batch(limit=2)

    assert result.processed == 2
    assert result.successful == 2
    assert result.failed == 0
    assert result.remaining_count == 1
    assert result.errors == []
    assert result.total_cost_usd == pytest.approx(10 * 0.15 / 1_000_000)
    assert embed_models.calls[0]["contents"] == ["Bookmark 0", "Bookmark 1"]
    assert storage.get_document(document_id="doc0").embedding == [1.0, 0.0, 0.0]
    assert storage.get_document(document_id="doc2").embedding is None
    records = storage.recent_cost_records()
    assert len(records) == 1
    assert records[0].request_type == "embedding_batch"
    assert records[0].total_tokens == 10


def test_second_run_does_not_embed_again(storage, ledger, provider, embed_models) -> None:
    _seed(storage, 2)
    indexer = EmbeddingIndexer(storage, provider, ledger)

    first = indexer.run_batch(limit=10)
    second = indexer.run_batch(limit=10)

    assert first.processed == 2
    assert second.processed == 0
    assert second.remaining_count == 0
    assert len(embed_models.calls) == 1


def test_documents_from_another_model_are_re_embedded(storage, ledger, provider) -> None:
    storage.upsert_document(
        make_document("stale", embedding=[0.0, 1.0, 0.0], embedding_model="old-model")
    )

    result = EmbeddingIndexer(storage, provider, ledger).run_batch()

    assert result.successful == 1
    stored = storage.get_document(document_id="stale")
    assert stored.embedding_model == TEST_EMBEDDING_MODEL


def test_per_document_failure_does_not_abort_batch(storage, ledger) -> None:
    _seed(storage, 2)
    models = MockEmbedModels(vectors={"Bookmark 1": [1.0, 0.0]})
    provider = EmbeddingProvider(
        model=TEST_EMBEDDING_MODEL, dim=TEST_DIM, client=MockGenAIClient(models)
    )

    result = EmbeddingIndexer(storage, provider, ledger).run_batch(limit=10)

    assert result.processed == 2
    assert result.successful == 1
    assert result.failed == 1
    assert result.remaining_count == 1
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Document doc1:")


def test_batch_call_failure_marks_every_document_failed(storage, ledger) -> None:
    _seed(storage, 3)
    models = MockEmbedModels(error=RuntimeError("503 from upstream"))
    provider = EmbeddingProvider(
        model=TEST_EMBEDDING_MODEL, dim=TEST_DIM, client=MockGenAIClient(models)
    )

    result = EmbeddingIndexer(storage, provider, ledger).run_batch(limit=10)

    assert result.processed == 3
    assert result.successful == 0
    assert result.failed == 3
    assert result.total_cost_usd == 0.0
    assert result.remaining_count == 3
    assert result.errors[0].startswith("Batch processing failed:")
    records = storage.recent_cost_records()
    assert len(records) == 1
    assert records[0].success is False


def test_run_batch_checks_cost_cap_before_calling(storage, ledger, provider, embed_models) -> None:
    _seed(storage, 1)
    storage.insert_cost_record(
        CostRecord(model="test-chat", request_type="chat", cost_usd=1.0)
    )

    with pytest.raises(CostLimitReachedError):
        EmbeddingIndexer(storage, provider, ledger).run_batch()

    assert embed_models.calls == []


@pytest.mark.parametrize("limit, offset", [(0, 0), (51, 0), (10, -1)])
def test_run_batch_validates_arguments(storage, ledger, provider, limit, offset) -> None:
    with pytest.raises(ValidationError):
        EmbeddingIndexer(storage, provider, ledger).run_batch(limit=limit, offset=offset)


def test_embed_document_stores_vector_and_cost(storage, ledger, provider) -> None:
    storage.upsert_document(make_document("a", title="SwiftUI", summary="Layouts"))

    result = EmbeddingIndexer(storage, provider, ledger).embed_document(document_id="a")

    assert result.dimensions == TEST_DIM
    assert result.tokens == 5
    assert result.cost_usd == pytest.approx(5 * 0.15 / 1_000_000)
    assert storage.get_document(document_id="a").embedding == [1.0, 0.0, 0.0]
    records = storage.recent_cost_records()
    assert records[0].request_type == "embedding"
    assert records[0].document_id == "a"


def test_embed_document_batch_flag_skips_cap_check(storage, ledger, provider) -> None:
    storage.upsert_document(make_document("a", title="SwiftUI"))
    storage.insert_cost_record(
        CostRecord(model="test-chat", request_type="chat", cost_usd=1.0)
    )
    indexer = EmbeddingIndexer(storage, provider, ledger)

    with pytest.raises(CostLimitReachedError):
        indexer.embed_document(document_id="a")
    result = indexer.embed_document(document_id="a", batch=True)

    assert result.document_id == "a"


def test_embed_document_errors(storage, ledger) -> None:
    models = MockEmbedModels(error=RuntimeError("timeout"))
    provider = EmbeddingProvider(
        model=TEST_EMBEDDING_MODEL, dim=TEST_DIM, client=MockGenAIClient(models)
    )
    indexer = EmbeddingIndexer(storage, provider, ledger)
    storage.upsert_document(make_document("a", title="SwiftUI"))

    with pytest.raises(DocumentNotFoundError):
        indexer.embed_document(document_id="missing")
    with pytest.raises(ModelUnavailableError):
        indexer.embed_document(document_id="a")

    assert storage.get_document(document_id="a").embedding is None
    assert storage.recent_cost_records()[0].success is False


def test_embed_document_rejects_wrong_dimensionality(storage, ledger) -> None:
    models = MockEmbedModels(default=[1.0, 0.0])
    provider = EmbeddingProvider(
        model=TEST_EMBEDDING_MODEL, dim=TEST_DIM, client=MockGenAIClient(models)
    )
    storage.upsert_document(make_document("a", title="SwiftUI"))

    with pytest.raises(ModelUnavailableError, match="expected 3"):
        EmbeddingIndexer(storage, provider, ledger).embed_document(document_id="a")

    assert storage.get_document(document_id="a").embedding is None
    record = storage.recent_cost_records()[0]
    assert record.success is False
    assert record.cost_usd == 0.0
