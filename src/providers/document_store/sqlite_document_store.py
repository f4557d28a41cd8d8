"""SQLite-backed document status/record store.

Persists :class:`~src.models.document.DocumentRecord` rows to a local SQLite
database at ``data/documents.db`` using ``aiosqlite`` for async I/O.

The ``error_history`` list is stored as a JSON array in a TEXT column.  The
two writes that must be atomic are:

* **claim** -- a conditional ``UPDATE ... WHERE status = 'pending'``; SQLite
  serializes writers, so exactly one concurrent caller sees a changed row.
* **mark_error** -- read the history, append, write back, inside one
  ``BEGIN IMMEDIATE`` transaction so no other writer interleaves.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from src.interfaces.document_store import IDocumentStore
from src.models.document import (
    DocumentRecord,
    DocumentStatus,
    ErrorHistoryEntry,
    ProcessingStage,
    utc_now,
)
from src.utils.errors import DocumentNotFoundError, PersistenceError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/documents.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS documents (
    id                TEXT PRIMARY KEY,
    project_id        TEXT,
    filename          TEXT NOT NULL,
    content_type      TEXT NOT NULL,
    storage_locator   TEXT NOT NULL DEFAULT '',
    source_url        TEXT,
    status            TEXT NOT NULL DEFAULT 'pending',
    processing_stage  TEXT,
    chunk_count       INTEGER,
    has_page_data     INTEGER,
    error_history     TEXT NOT NULL DEFAULT '[]',
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_documents_project ON documents(project_id);",
    "CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(status);",
]

_INSERT_SQL = """\
INSERT INTO documents (
    id, project_id, filename, content_type, storage_locator, source_url,
    status, processing_stage, chunk_count, has_page_data, error_history,
    created_at, updated_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_SQL = "SELECT * FROM documents WHERE id = ?;"

_CLAIM_SQL = """\
UPDATE documents
SET status = 'processing', processing_stage = NULL, updated_at = ?
WHERE id = ? AND status = 'pending';
"""

_SET_STAGE_SQL = """\
UPDATE documents SET processing_stage = ?, updated_at = ?
WHERE id = ? AND status = 'processing';
"""

_MARK_EMBEDDED_SQL = """\
UPDATE documents
SET status = 'embedded', processing_stage = NULL, chunk_count = ?,
    has_page_data = ?, updated_at = ?
WHERE id = ?;
"""

_MARK_ERROR_SQL = """\
UPDATE documents
SET status = 'error', processing_stage = NULL, error_history = ?, updated_at = ?
WHERE id = ?;
"""

_RESET_SQL = """\
UPDATE documents
SET status = 'pending', processing_stage = NULL, chunk_count = NULL,
    has_page_data = NULL, updated_at = ?
WHERE id = ? AND status != 'processing';
"""


def _row_to_record(row: aiosqlite.Row) -> DocumentRecord:
    data: dict[str, Any] = dict(row)
    data["error_history"] = json.loads(data["error_history"] or "[]")
    if data["has_page_data"] is not None:
        data["has_page_data"] = bool(data["has_page_data"])
    return DocumentRecord.model_validate(data)


def _history_to_json(history: list[ErrorHistoryEntry]) -> str:
    return json.dumps([entry.model_dump(mode="json") for entry in history])


class SQLiteDocumentStore(IDocumentStore):
    """SQLite persistence for document lifecycle records."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the documents table and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("document_db_initialized", path=str(self._db_path))

    async def create(self, record: DocumentRecord) -> DocumentRecord:
        async with self._connect() as db:
            await db.execute(
                _INSERT_SQL,
                (
                    record.id,
                    record.project_id,
                    record.filename,
                    record.content_type,
                    record.storage_locator,
                    record.source_url,
                    record.status.value,
                    record.processing_stage.value if record.processing_stage else None,
                    record.chunk_count,
                    None if record.has_page_data is None else int(record.has_page_data),
                    _history_to_json(record.error_history),
                    record.created_at.isoformat(),
                    record.updated_at.isoformat(),
                ),
            )
            await db.commit()
        logger.info("document_created", document_id=record.id, project_id=record.project_id)
        return record

    async def get(self, document_id: str) -> DocumentRecord | None:
        async with self._connect() as db:
            return await self._fetch(db, document_id)

    async def list(
        self,
        project_id: str | None = None,
        include_global: bool = True,
    ) -> list[DocumentRecord]:
        if project_id is None:
            where, params = "project_id IS NULL", ()
        elif include_global:
            where, params = "(project_id = ? OR project_id IS NULL)", (project_id,)
        else:
            where, params = "project_id = ?", (project_id,)

        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT * FROM documents WHERE {where} ORDER BY created_at DESC",  # noqa: S608
                params,
            )
            rows = await cursor.fetchall()
        return [_row_to_record(r) for r in rows]

    async def claim(self, document_id: str) -> DocumentRecord | None:
        async with self._connect() as db:
            cursor = await db.execute(_CLAIM_SQL, (utc_now().isoformat(), document_id))
            await db.commit()
            if cursor.rowcount != 1:
                return None
            return await self._fetch(db, document_id)

    async def set_stage(self, document_id: str, stage: ProcessingStage) -> None:
        async with self._connect() as db:
            await db.execute(_SET_STAGE_SQL, (stage.value, utc_now().isoformat(), document_id))
            await db.commit()

    async def mark_embedded(
        self,
        document_id: str,
        chunk_count: int,
        has_page_data: bool | None,
    ) -> DocumentRecord:
        async with self._connect() as db:
            cursor = await db.execute(
                _MARK_EMBEDDED_SQL,
                (
                    chunk_count,
                    None if has_page_data is None else int(has_page_data),
                    utc_now().isoformat(),
                    document_id,
                ),
            )
            await db.commit()
            if cursor.rowcount != 1:
                raise DocumentNotFoundError(
                    f"Document {document_id} disappeared before it was marked embedded",
                    provider_name=self.get_provider_name(),
                )
            record = await self._fetch(db, document_id)
        return record  # type: ignore[return-value]

    async def mark_error(self, document_id: str, code: str, message: str) -> ErrorHistoryEntry:
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE")
            try:
                cursor = await db.execute(
                    "SELECT error_history FROM documents WHERE id = ?",
                    (document_id,),
                )
                row = await cursor.fetchone()
                if row is None:
                    raise DocumentNotFoundError(
                        f"Document {document_id} not found",
                        provider_name=self.get_provider_name(),
                    )
                history = [
                    ErrorHistoryEntry.model_validate(e)
                    for e in json.loads(row["error_history"] or "[]")
                ]
                entry = ErrorHistoryEntry(
                    attempt=len(history) + 1,
                    code=code,
                    message=message,
                )
                history.append(entry)
                await db.execute(
                    _MARK_ERROR_SQL,
                    (_history_to_json(history), utc_now().isoformat(), document_id),
                )
                await db.commit()
            except BaseException:
                await db.rollback()
                raise
        logger.info(
            "document_error_recorded",
            document_id=document_id,
            code=code,
            attempt=entry.attempt,
        )
        return entry

    async def reset_for_reingest(self, document_id: str) -> DocumentRecord | None:
        async with self._connect() as db:
            cursor = await db.execute(_RESET_SQL, (utc_now().isoformat(), document_id))
            await db.commit()
            if cursor.rowcount != 1:
                return None
            return await self._fetch(db, document_id)

    async def delete(self, document_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("document_record_deleted", document_id=document_id)
        return deleted

    def get_provider_name(self) -> str:
        return "sqlite"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection, translating driver errors to PersistenceError."""
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                yield db
        except aiosqlite.Error as exc:
            raise PersistenceError(
                message=f"Document store operation failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    @staticmethod
    async def _fetch(db: aiosqlite.Connection, document_id: str) -> DocumentRecord | None:
        cursor = await db.execute(_SELECT_SQL, (document_id,))
        row = await cursor.fetchone()
        return _row_to_record(row) if row is not None else None
