"""Tests for the DuckDB storage backend."""

from __future__ import annotations

import threading
from datetime import timedelta
from pathlib import Path

import pytest

from conftest import BASE_TIME, TEST_EMBEDDING_MODEL, make_document
from linkvault.storage import CostRecord, DuckDBStorage, SearchFilters


def test_upsert_and_get_round_trip(storage) -> None:
    doc = make_document("a", title="SwiftUI layout", body="Stacks and grids")
    storage.upsert_document(doc)

    loaded = storage.get_document(document_id="a")

    assert loaded is not None
    assert loaded.title == "SwiftUI layout"
    assert loaded.created_at == BASE_TIME
    assert loaded.embedding is None
    assert storage.get_document(document_id="missing") is None


def test_upsert_keeps_existing_embedding(storage) -> None:
    storage.upsert_document(make_document("a", embedding=[0.1, 0.2, 0.3]))
    storage.upsert_document(make_document("a", title="renamed"))

    loaded = storage.get_document(document_id="a")

    assert loaded.title == "renamed"
    assert loaded.embedding == [0.1, 0.2, 0.3]
    assert loaded.embedding_model == TEST_EMBEDDING_MODEL


def test_text_search_is_case_insensitive_newest_first(storage) -> None:
    storage.upsert_document(make_document("old", title="Learning swiftui", age_minutes=30))
    storage.upsert_document(make_document("new", body="SWIFTUI previews", age_minutes=5))
    storage.upsert_document(make_document("other", title="Rust ownership"))

    results = storage.search_documents_text(
        query="SwiftUI", filters=SearchFilters(), limit=10
    )

    assert [doc.id for doc in results] == ["new", "old"]


def test_text_search_treats_wildcards_literally(storage) -> None:
    storage.upsert_document(make_document("pct", title="100% coverage"))
    storage.upsert_document(make_document("plain", title="1000 coverage"))

    results = storage.search_documents_text(query="0%", filters=SearchFilters(), limit=10)

    assert [doc.id for doc in results] == ["pct"]


def test_text_search_applies_filters_and_limit(storage) -> None:
    storage.upsert_document(make_document("t1", title="python tips", category="tech"))
    storage.upsert_document(make_document("n1", title="python news", category="news"))
    storage.upsert_document(
        make_document("t2", title="python video", category="tech", source_type="video")
    )

    tech = storage.search_documents_text(
        query="python", filters=SearchFilters(category="tech"), limit=10
    )
    video = storage.search_documents_text(
        query="python", filters=SearchFilters(category="tech", source_type="video"), limit=10
    )
    limited = storage.search_documents_text(query="python", filters=SearchFilters(), limit=1)

    assert {doc.id for doc in tech} == {"t1", "t2"}
    assert [doc.id for doc in video] == ["t2"]
    assert len(limited) == 1


def test_text_search_folds_query_and_columns_the_same_way(storage) -> None:
    storage.upsert_document(make_document("fr", title="ÉCOLE NORMALE guide"))

    results = storage.search_documents_text(
        query="  École normale ", filters=SearchFilters(), limit=10
    )

    assert [doc.id for doc in results] == ["fr"]


def test_text_search_hides_archived_unless_requested(storage) -> None:
    storage.upsert_document(make_document("live", title="python tips", age_minutes=1))
    storage.upsert_document(make_document("old", title="python 2 tips", archived=True))

    default = storage.search_documents_text(query="python", filters=SearchFilters(), limit=10)
    archived = storage.search_documents_text(
        query="python", filters=SearchFilters(), limit=10, archived=True
    )
    active = storage.search_documents_text(
        query="python", filters=SearchFilters(), limit=10, archived=False
    )

    assert [doc.id for doc in default] == ["live"]
    assert [doc.id for doc in archived] == ["old"]
    assert archived[0].archived is True
    assert [doc.id for doc in active] == ["live"]


def test_missing_embedding_queries_treat_other_models_as_missing(storage) -> None:
    storage.upsert_document(make_document("a", age_minutes=30))
    storage.upsert_document(make_document("b", age_minutes=20, embedding=[1.0, 0.0, 0.0]))
    storage.upsert_document(
        make_document(
            "c", age_minutes=10, embedding=[1.0, 0.0, 0.0], embedding_model="old-model"
        )
    )

    missing = storage.list_documents_missing_embedding(
        embedding_model=TEST_EMBEDDING_MODEL, limit=10
    )
    embedded = storage.list_embedded_documents(
        embedding_model=TEST_EMBEDDING_MODEL, filters=SearchFilters()
    )

    assert [doc.id for doc in missing] == ["a", "c"]
    assert storage.count_documents_missing_embedding(embedding_model=TEST_EMBEDDING_MODEL) == 2
    assert [doc.id for doc in embedded] == ["b"]
    assert [
        doc.id
        for doc in storage.list_documents_missing_embedding(
            embedding_model=TEST_EMBEDDING_MODEL, limit=10, offset=1
        )
    ] == ["c"]


def test_store_embedding_for_unknown_document_raises(storage) -> None:
    with pytest.raises(KeyError):
        storage.store_document_embedding(
            document_id="ghost", embedding=[1.0], embedding_model=TEST_EMBEDDING_MODEL
        )


def test_update_enrichment(storage) -> None:
    storage.upsert_document(make_document("a", category="other"))

    storage.update_document_enrichment(
        document_id="a", summary="A summary.", category="tech", tags=["swift", "ios"]
    )

    loaded = storage.get_document(document_id="a")
    assert loaded.summary == "A summary."
    assert loaded.category == "tech"
    assert loaded.tags == ["swift", "ios"]
    assert loaded.llm_status == "done"


def test_enrichment_status_round_trip(storage) -> None:
    storage.upsert_document(make_document("a"))

    storage.set_enrichment_status(document_id="a", status="failed", error="quota")
    failed = storage.get_document(document_id="a")
    storage.upsert_document(make_document("a", title="renamed"))
    after_upsert = storage.get_document(document_id="a")

    assert (failed.llm_status, failed.llm_error) == ("failed", "quota")
    assert after_upsert.llm_status == "failed"
    with pytest.raises(KeyError):
        storage.set_enrichment_status(document_id="ghost", status="processing")


def test_cost_records_sum_breakdown_and_recent(storage) -> None:
    storage.insert_cost_record(
        CostRecord(model="m1", request_type="embedding", total_tokens=10, cost_usd=0.1, created_at=BASE_TIME)
    )
    storage.insert_cost_record(
        CostRecord(
            model="m2",
            request_type="chat",
            total_tokens=20,
            cost_usd=0.3,
            created_at=BASE_TIME + timedelta(minutes=1),
        )
    )
    storage.insert_cost_record(
        CostRecord.failure(model="m1", request_type="embedding", error_message="boom")
    )

    total, count = storage.sum_costs(
        start=BASE_TIME - timedelta(hours=1), end=BASE_TIME + timedelta(hours=1)
    )
    breakdown = storage.cost_breakdown_by_model(
        start=BASE_TIME - timedelta(hours=1), end=BASE_TIME + timedelta(hours=1)
    )
    recent = storage.recent_cost_records(limit=2)

    assert total == pytest.approx(0.4)
    assert count == 2
    assert breakdown[0] == {
        "model": "m2",
        "request_count": 1,
        "total_tokens": 20,
        "total_cost_usd": pytest.approx(0.3),
    }
    assert recent[0].success is False
    assert recent[0].error_message == "boom"
    assert len(recent) == 2


def test_file_database_persists_between_connections(tmp_path: Path) -> None:
    db_path = str(tmp_path / "nested" / "bookmarks.duckdb")
    first = DuckDBStorage(db_path)
    first.upsert_document(make_document("a", title="persisted"))
    first.close()

    second = DuckDBStorage(db_path, read_only=True, initialize=False)
    try:
        assert second.get_document(document_id="a").title == "persisted"
    finally:
        second.close()


def test_cursors_of_finished_threads_are_released(storage) -> None:
    storage.upsert_document(make_document("a", title="SwiftUI"))

    def read() -> None:
        storage.get_document(document_id="a")

    for _ in range(5):
        worker = threading.Thread(target=read)
        worker.start()
        worker.join()

    # Only the calling thread and the most recent worker can still hold one.
    assert len(storage._cursors) <= 2
    assert storage.get_document(document_id="a").title == "SwiftUI"
