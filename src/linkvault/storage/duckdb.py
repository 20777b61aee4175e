"""
DuckDB storage backend for bookmarks and the append-only cost log.
"""

from __future__ import annotations

import json
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import duckdb

from .base import CostRecord, Document, SearchFilters

_DOCUMENT_COLUMNS = """
    id, url, title, summary, body, category, source_type, tags,
    created_at, embedding, embedding_model, archived, llm_status, llm_error
"""

_COST_COLUMNS = """
    id, model, prompt_tokens, completion_tokens, total_tokens, cost_usd,
    request_type, success, error_message, document_id, created_at
"""


def _to_db_timestamp(value: datetime) -> datetime:
    # DuckDB TIMESTAMP columns are naive; everything is stored as UTC.
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def _from_db_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value.replace(tzinfo=UTC) if value.tzinfo is None else value
    return datetime.fromisoformat(str(value)).replace(tzinfo=UTC)


def _filter_clause(filters: SearchFilters) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    if filters.category is not None:
        clauses.append("category = ?")
        params.append(filters.category)
    if filters.source_type is not None:
        clauses.append("source_type = ?")
        params.append(filters.source_type)
    sql = "".join(f"\n  AND {clause}" for clause in clauses)
    return sql, params


class DuckDBStorage:
    """DuckDB-backed persistence for documents, embeddings and cost records.

    Every thread works through its own cursor on the shared connection, so the
    lexical and semantic branches of a hybrid query can read concurrently.
    """

    def __init__(
        self,
        db_path: str,
        *,
        read_only: bool = False,
        initialize: bool = True,
    ) -> None:
        if db_path == ":memory:":
            self.db_path = db_path
        else:
            self.db_path = str(Path(db_path).expanduser().resolve())
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.read_only = read_only
        self._conn = duckdb.connect(self.db_path, read_only=read_only)
        self._local = threading.local()
        self._cursors: dict[threading.Thread, duckdb.DuckDBPyConnection] = {}
        self._cursors_lock = threading.Lock()
        if initialize and not read_only:
            self.initialize()

    def _cursor(self) -> duckdb.DuckDBPyConnection:
        cursor = getattr(self._local, "cursor", None)
        if cursor is None:
            cursor = self._conn.cursor()
            self._local.cursor = cursor
            with self._cursors_lock:
                self._close_dead_thread_cursors()
                self._cursors[threading.current_thread()] = cursor
        return cursor

    def _close_dead_thread_cursors(self) -> None:
        # Callers hold _cursors_lock.
        for thread in [t for t in self._cursors if not t.is_alive()]:
            self._cursors.pop(thread).close()

    def close(self) -> None:
        """Close every per-thread cursor and the underlying connection."""
        with self._cursors_lock:
            for cursor in self._cursors.values():
                cursor.close()
            self._cursors.clear()
        self._conn.close()

    def initialize(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                id VARCHAR PRIMARY KEY,
                url VARCHAR NOT NULL,
                title VARCHAR NOT NULL DEFAULT '',
                summary VARCHAR NOT NULL DEFAULT '',
                body VARCHAR NOT NULL DEFAULT '',
                category VARCHAR NOT NULL DEFAULT 'other',
                source_type VARCHAR NOT NULL DEFAULT 'other',
                tags VARCHAR NOT NULL DEFAULT '[]',
                created_at TIMESTAMP NOT NULL,
                embedding VARCHAR,
                embedding_model VARCHAR,
                archived BOOLEAN NOT NULL DEFAULT FALSE,
                llm_status VARCHAR NOT NULL DEFAULT 'pending',
                llm_error VARCHAR,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS cost_records (
                id VARCHAR PRIMARY KEY,
                model VARCHAR NOT NULL,
                prompt_tokens INTEGER NOT NULL DEFAULT 0,
                completion_tokens INTEGER NOT NULL DEFAULT 0,
                total_tokens INTEGER NOT NULL DEFAULT 0,
                cost_usd DOUBLE NOT NULL DEFAULT 0,
                request_type VARCHAR NOT NULL,
                success BOOLEAN NOT NULL,
                error_message VARCHAR,
                document_id VARCHAR,
                created_at TIMESTAMP NOT NULL
            );
            """
        )

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def upsert_document(self, document: Document) -> None:
        self._cursor().execute(
            """
            INSERT INTO documents (
                id, url, title, summary, body, category, source_type, tags,
                created_at, archived
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                url = excluded.url,
                title = excluded.title,
                summary = excluded.summary,
                body = excluded.body,
                category = excluded.category,
                source_type = excluded.source_type,
                tags = excluded.tags,
                archived = excluded.archived,
                updated_at = now()
            """,
            [
                document.id,
                document.url,
                document.title,
                document.summary,
                document.body,
                document.category,
                document.source_type,
                json.dumps(list(document.tags)),
                _to_db_timestamp(document.created_at),
                document.archived,
            ],
        )
        if document.embedding is not None and document.embedding_model is not None:
            self.store_document_embedding(
                document_id=document.id,
                embedding=document.embedding,
                embedding_model=document.embedding_model,
            )

    def get_document(self, *, document_id: str) -> Document | None:
        row = self._cursor().execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ? LIMIT 1",
            [document_id],
        ).fetchone()
        if row is None:
            return None
        return self._row_to_document(row)

    def search_documents_text(
        self,
        *,
        query: str,
        filters: SearchFilters,
        limit: int,
        archived: bool | None = None,
    ) -> list[Document]:
        needle = query.strip()
        if not needle:
            return []
        # strpos instead of LIKE so '%' and '_' in the query match literally;
        # both sides go through DuckDB's lower() so they fold the same way.
        filter_sql, filter_params = _filter_clause(filters)
        sql = f"""
            SELECT {_DOCUMENT_COLUMNS}
            FROM documents
            WHERE (
                strpos(lower(title), lower(?)) > 0
                OR strpos(lower(summary), lower(?)) > 0
                OR strpos(lower(body), lower(?)) > 0
            )
              AND archived = ?{filter_sql}
            ORDER BY created_at DESC, id ASC
            LIMIT ?
        """
        params: list[Any] = [
            needle,
            needle,
            needle,
            bool(archived),
            *filter_params,
            limit,
        ]
        rows = self._cursor().execute(sql, params).fetchall()
        return [self._row_to_document(row) for row in rows]

    def list_embedded_documents(
        self,
        *,
        embedding_model: str,
        filters: SearchFilters,
    ) -> list[Document]:
        filter_sql, filter_params = _filter_clause(filters)
        sql = f"""
            SELECT {_DOCUMENT_COLUMNS}
            FROM documents
            WHERE embedding IS NOT NULL
              AND embedding_model = ?{filter_sql}
            ORDER BY created_at DESC, id ASC
        """
        rows = self._cursor().execute(sql, [embedding_model, *filter_params]).fetchall()
        return [self._row_to_document(row) for row in rows]

    def list_documents_missing_embedding(
        self,
        *,
        embedding_model: str,
        limit: int,
        offset: int = 0,
    ) -> list[Document]:
        rows = self._cursor().execute(
            f"""
            SELECT {_DOCUMENT_COLUMNS}
            FROM documents
            WHERE embedding IS NULL
               OR embedding_model IS DISTINCT FROM ?
            ORDER BY created_at ASC, id ASC
            LIMIT ? OFFSET ?
            """,
            [embedding_model, limit, offset],
        ).fetchall()
        return [self._row_to_document(row) for row in rows]

    def count_documents_missing_embedding(self, *, embedding_model: str) -> int:
        row = self._cursor().execute(
            """
            SELECT COUNT(*)
            FROM documents
            WHERE embedding IS NULL
               OR embedding_model IS DISTINCT FROM ?
            """,
            [embedding_model],
        ).fetchone()
        return int(row[0]) if row else 0

    def store_document_embedding(
        self,
        *,
        document_id: str,
        embedding: list[float],
        embedding_model: str,
    ) -> None:
        cursor = self._cursor()
        self._require_document(cursor, document_id)
        cursor.execute(
            """
            UPDATE documents
            SET embedding = ?, embedding_model = ?, updated_at = now()
            WHERE id = ?
            """,
            [json.dumps([float(value) for value in embedding]), embedding_model, document_id],
        )

    def update_document_enrichment(
        self,
        *,
        document_id: str,
        summary: str,
        category: str,
        tags: list[str],
    ) -> None:
        cursor = self._cursor()
        self._require_document(cursor, document_id)
        cursor.execute(
            """
            UPDATE documents
            SET summary = ?, category = ?, tags = ?,
                llm_status = 'done', llm_error = NULL, updated_at = now()
            WHERE id = ?
            """,
            [summary, category, json.dumps(tags), document_id],
        )

    def set_enrichment_status(
        self,
        *,
        document_id: str,
        status: str,
        error: str | None = None,
    ) -> None:
        cursor = self._cursor()
        self._require_document(cursor, document_id)
        cursor.execute(
            """
            UPDATE documents
            SET llm_status = ?, llm_error = ?, updated_at = now()
            WHERE id = ?
            """,
            [status, error, document_id],
        )

    @staticmethod
    def _require_document(cursor: duckdb.DuckDBPyConnection, document_id: str) -> None:
        exists = cursor.execute(
            "SELECT 1 FROM documents WHERE id = ?", [document_id]
        ).fetchone()
        if exists is None:
            raise KeyError(f"Document not found: {document_id}")

    # ------------------------------------------------------------------
    # Cost records (append-only: no update or delete is exposed)
    # ------------------------------------------------------------------

    def insert_cost_record(self, record: CostRecord) -> None:
        self._cursor().execute(
            f"""
            INSERT INTO cost_records ({_COST_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                record.id,
                record.model,
                record.prompt_tokens,
                record.completion_tokens,
                record.total_tokens,
                float(record.cost_usd),
                record.request_type,
                record.success,
                record.error_message,
                record.document_id,
                _to_db_timestamp(record.created_at),
            ],
        )

    def sum_costs(self, *, start: datetime, end: datetime) -> tuple[float, int]:
        row = self._cursor().execute(
            """
            SELECT COALESCE(SUM(cost_usd), 0), COUNT(*)
            FROM cost_records
            WHERE created_at >= ? AND created_at < ?
            """,
            [_to_db_timestamp(start), _to_db_timestamp(end)],
        ).fetchone()
        if row is None:
            return 0.0, 0
        return float(row[0]), int(row[1])

    def cost_breakdown_by_model(
        self, *, start: datetime, end: datetime
    ) -> list[dict[str, Any]]:
        rows = self._cursor().execute(
            """
            SELECT
                model,
                COUNT(*) AS request_count,
                COALESCE(SUM(total_tokens), 0) AS total_tokens,
                COALESCE(SUM(cost_usd), 0) AS total_cost_usd
            FROM cost_records
            WHERE created_at >= ? AND created_at < ?
            GROUP BY model
            ORDER BY total_cost_usd DESC, model ASC
            """,
            [_to_db_timestamp(start), _to_db_timestamp(end)],
        ).fetchall()
        return [
            {
                "model": str(row[0]),
                "request_count": int(row[1]),
                "total_tokens": int(row[2]),
                "total_cost_usd": float(row[3]),
            }
            for row in rows
        ]

    def recent_cost_records(self, *, limit: int = 10) -> list[CostRecord]:
        rows = self._cursor().execute(
            f"""
            SELECT {_COST_COLUMNS}
            FROM cost_records
            ORDER BY created_at DESC, id ASC
            LIMIT ?
            """,
            [limit],
        ).fetchall()
        return [self._row_to_cost_record(row) for row in rows]

    @staticmethod
    def _row_to_document(row: tuple[Any, ...]) -> Document:
        raw_tags = row[7]
        tags = json.loads(raw_tags) if raw_tags else []
        raw_embedding = row[9]
        return Document(
            id=str(row[0]),
            url=str(row[1]),
            title=str(row[2] or ""),
            summary=str(row[3] or ""),
            body=str(row[4] or ""),
            category=str(row[5] or "other"),
            source_type=str(row[6] or "other"),
            tags=[str(tag) for tag in tags],
            created_at=_from_db_timestamp(row[8]),
            embedding=(
                [float(value) for value in json.loads(raw_embedding)]
                if raw_embedding
                else None
            ),
            embedding_model=str(row[10]) if row[10] is not None else None,
            archived=bool(row[11]),
            llm_status=row[12] or "pending",
            llm_error=str(row[13]) if row[13] is not None else None,
        )

    @staticmethod
    def _row_to_cost_record(row: tuple[Any, ...]) -> CostRecord:
        return CostRecord(
            id=str(row[0]),
            model=str(row[1]),
            prompt_tokens=int(row[2]),
            completion_tokens=int(row[3]),
            total_tokens=int(row[4]),
            cost_usd=float(row[5]),
            request_type=row[6],
            success=bool(row[7]),
            error_message=str(row[8]) if row[8] is not None else None,
            document_id=str(row[9]) if row[9] is not None else None,
            created_at=_from_db_timestamp(row[10]),
        )
