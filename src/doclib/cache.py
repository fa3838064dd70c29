"""Durable cache of parsed documents keyed by content hash."""
from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Protocol, runtime_checkable

from .errors import CacheError
from .telemetry import emit_cache_event

LOGGER = logging.getLogger(__name__)

INDEX_PAYLOAD_MARKER = "bm25-rebuild-from-chunks"

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    hash TEXT PRIMARY KEY,
    structure TEXT NOT NULL,
    chunks TEXT NOT NULL,
    index_payload TEXT NOT NULL,
    metadata TEXT NOT NULL
)
"""


@dataclass(slots=True)
class CachedDocument:
    """Serialisable form of an ingested document."""

    structure: Dict[str, Any]
    chunks: List[Dict[str, Any]]
    metadata: Dict[str, Any]
    index_payload: str = INDEX_PAYLOAD_MARKER

    def to_row(self, doc_hash: str) -> tuple[str, str, str, str, str]:
        return (
            doc_hash,
            json.dumps(self.structure, ensure_ascii=False),
            json.dumps(self.chunks, ensure_ascii=False),
            self.index_payload,
            json.dumps(self.metadata, ensure_ascii=False),
        )

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "CachedDocument":
        return cls(
            structure=json.loads(row["structure"]),
            chunks=json.loads(row["chunks"]),
            metadata=json.loads(row["metadata"]),
            index_payload=row["index_payload"],
        )


@runtime_checkable
class DocumentCache(Protocol):
    async def get(self, doc_hash: str) -> Optional[CachedDocument]:
        ...

    async def put(self, doc_hash: str, record: CachedDocument) -> None:
        ...

    async def has(self, doc_hash: str) -> bool:
        ...

    async def delete(self, doc_hash: str) -> None:
        ...


class SQLiteDocumentCache:
    """Single-table SQLite cache; every failure degrades to a cache miss."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._initialized = False

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        if not self._initialized:
            conn.execute(SCHEMA)
            self._initialized = True

    def _get(self, doc_hash: str) -> Optional[CachedDocument]:
        try:
            with self.connection() as conn:
                self._ensure_schema(conn)
                row = conn.execute(
                    "SELECT structure, chunks, index_payload, metadata FROM documents WHERE hash = ?",
                    (doc_hash,),
                ).fetchone()
            if row is None:
                return None
            return CachedDocument.from_row(row)
        except (sqlite3.Error, OSError, ValueError, KeyError) as exc:
            raise CacheError(f"Failed to read cached document {doc_hash}: {exc}") from exc

    def _put(self, doc_hash: str, record: CachedDocument) -> None:
        try:
            with self.connection() as conn:
                self._ensure_schema(conn)
                conn.execute(
                    """INSERT OR REPLACE INTO documents
                       (hash, structure, chunks, index_payload, metadata)
                       VALUES (?, ?, ?, ?, ?)""",
                    record.to_row(doc_hash),
                )
        except (sqlite3.Error, OSError, TypeError, ValueError) as exc:
            raise CacheError(f"Failed to write cached document {doc_hash}: {exc}") from exc

    def _has(self, doc_hash: str) -> bool:
        try:
            with self.connection() as conn:
                self._ensure_schema(conn)
                row = conn.execute("SELECT 1 FROM documents WHERE hash = ?", (doc_hash,)).fetchone()
            return row is not None
        except (sqlite3.Error, OSError) as exc:
            raise CacheError(f"Failed to check cached document {doc_hash}: {exc}") from exc

    def _delete(self, doc_hash: str) -> None:
        try:
            with self.connection() as conn:
                self._ensure_schema(conn)
                conn.execute("DELETE FROM documents WHERE hash = ?", (doc_hash,))
        except (sqlite3.Error, OSError) as exc:
            raise CacheError(f"Failed to delete cached document {doc_hash}: {exc}") from exc

    async def get(self, doc_hash: str) -> Optional[CachedDocument]:
        try:
            record = await asyncio.to_thread(self._get, doc_hash)
        except CacheError as error:
            emit_cache_event("cache.read_failed", doc_hash=doc_hash, error=error)
            return None
        emit_cache_event("cache.hit" if record is not None else "cache.miss", doc_hash=doc_hash)
        return record

    async def put(self, doc_hash: str, record: CachedDocument) -> None:
        try:
            await asyncio.to_thread(self._put, doc_hash, record)
        except CacheError as error:
            emit_cache_event("cache.write_failed", doc_hash=doc_hash, error=error)
            return
        emit_cache_event("cache.write", doc_hash=doc_hash)

    async def has(self, doc_hash: str) -> bool:
        try:
            return await asyncio.to_thread(self._has, doc_hash)
        except CacheError as error:
            emit_cache_event("cache.read_failed", doc_hash=doc_hash, error=error)
            return False

    async def delete(self, doc_hash: str) -> None:
        try:
            await asyncio.to_thread(self._delete, doc_hash)
        except CacheError as error:
            emit_cache_event("cache.delete_failed", doc_hash=doc_hash, error=error)


@dataclass(slots=True)
class InMemoryDocumentCache:
    """Process-local cache used by tests and ephemeral deployments."""

    records: Dict[str, CachedDocument] = field(default_factory=dict)

    async def get(self, doc_hash: str) -> Optional[CachedDocument]:
        return self.records.get(doc_hash)

    async def put(self, doc_hash: str, record: CachedDocument) -> None:
        self.records[doc_hash] = record

    async def has(self, doc_hash: str) -> bool:
        return doc_hash in self.records

    async def delete(self, doc_hash: str) -> None:
        self.records.pop(doc_hash, None)


__all__ = [
    "CachedDocument",
    "DocumentCache",
    "INDEX_PAYLOAD_MARKER",
    "InMemoryDocumentCache",
    "SQLiteDocumentCache",
]
