import asyncio

import pytest

from conftest import FakeExtractor, act_pages, source_for
from doclib.cache import InMemoryDocumentCache, SQLiteDocumentCache
from doclib.errors import SourceError
from doclib.hashing import hash_source
from doclib.ingest.chunking import ChunkingConfig
from doclib.ingest.pipeline import IngestPipeline


def _pipeline(extractor: FakeExtractor, cache: InMemoryDocumentCache | None = None) -> IngestPipeline:
    return IngestPipeline(extractor=extractor, cache=cache or InMemoryDocumentCache())


def test_ingest_builds_structure_chunks_and_index() -> None:
    extractor = FakeExtractor(pages={"act.pdf": act_pages()})
    pipeline = _pipeline(extractor)

    document = asyncio.run(pipeline.ingest(source_for("act.pdf")))

    assert document.hash == hash_source(source_for("act.pdf"))
    assert [chunk.id for chunk in document.chunks] == ["chunk_0", "chunk_1"]
    assert document.chunks[1].section_path == ("PART I GENERAL PROVISIONS", "1. Penalty for late filing")
    assert document.metadata.page_count == 3
    assert document.metadata.url == "act.pdf"
    assert document.index.search("penalty", limit=3)[0][0] == "chunk_1"


def test_second_ingest_is_served_from_cache() -> None:
    extractor = FakeExtractor(pages={"act.pdf": act_pages()})
    cache = InMemoryDocumentCache()
    pipeline = _pipeline(extractor, cache)

    async def scenario():
        first = await pipeline.ingest(source_for("act.pdf"))
        second = await pipeline.ingest(source_for("act.pdf"))
        return first, second

    first, second = asyncio.run(scenario())

    assert extractor.total_calls == 1
    assert second.chunks == first.chunks
    assert second.structure == first.structure
    assert second.index is not first.index
    assert second.index.search("penalty", limit=3) == first.index.search("penalty", limit=3)


def test_force_reingest_reparses_and_overwrites() -> None:
    extractor = FakeExtractor(pages={"act.pdf": act_pages()})
    pipeline = _pipeline(extractor)

    async def scenario():
        await pipeline.ingest(source_for("act.pdf"))
        return await pipeline.ingest(source_for("act.pdf"), force_reingest=True)

    document = asyncio.run(scenario())

    assert extractor.total_calls == 2
    assert len(document.chunks) == 2


def test_is_ingested_reflects_cache_state() -> None:
    pipeline = _pipeline(FakeExtractor())
    source = source_for("upload.pdf", data=b"%PDF-1.7 bytes")

    async def scenario():
        before = await pipeline.is_ingested(source)
        await pipeline.ingest(source)
        return before, await pipeline.is_ingested(source)

    assert asyncio.run(scenario()) == (False, True)


def test_source_errors_propagate_and_leave_cache_untouched() -> None:
    extractor = FakeExtractor(errors={"broken.pdf": SourceError("PDF file is empty: broken.pdf")})
    cache = InMemoryDocumentCache()
    pipeline = _pipeline(extractor, cache)

    with pytest.raises(SourceError):
        asyncio.run(pipeline.ingest(source_for("broken.pdf")))

    assert cache.records == {}


class FailingCache(InMemoryDocumentCache):
    async def get(self, doc_hash):
        raise OSError("disk unavailable")

    async def put(self, doc_hash, record):
        raise OSError("disk full")


def test_cache_failures_do_not_fail_ingestion() -> None:
    extractor = FakeExtractor(pages={"act.pdf": act_pages()})
    pipeline = _pipeline(extractor, FailingCache())

    document = asyncio.run(pipeline.ingest(source_for("act.pdf")))

    assert len(document.chunks) == 2


def test_undecodable_cache_record_triggers_reparse() -> None:
    extractor = FakeExtractor(pages={"act.pdf": act_pages()})
    cache = InMemoryDocumentCache()
    pipeline = _pipeline(extractor, cache)
    source = source_for("act.pdf")

    async def scenario():
        await pipeline.ingest(source)
        cache.records[hash_source(source)].chunks = [{"unexpected": True}]
        return await pipeline.ingest(source)

    document = asyncio.run(scenario())

    assert extractor.total_calls == 2
    assert len(document.chunks) == 2


@pytest.mark.parametrize(
    "column, value",
    [("metadata", "[]"), ("structure", "\"text\""), ("chunks", "[1, 2]")],
)
def test_wrongly_shaped_sqlite_record_counts_as_miss(tmp_path, column, value) -> None:
    extractor = FakeExtractor(pages={"act.pdf": act_pages()})
    cache = SQLiteDocumentCache(tmp_path / "documents.sqlite3")
    pipeline = IngestPipeline(extractor=extractor, cache=cache)
    source = source_for("act.pdf")

    async def scenario():
        await pipeline.ingest(source)
        with cache.connection() as conn:
            conn.execute(f"UPDATE documents SET {column} = ?", (value,))
        return await pipeline.ingest(source)

    document = asyncio.run(scenario())

    assert extractor.total_calls == 2
    assert document.metadata.page_count == 3
    assert len(document.chunks) == 2


def test_chunk_budget_is_configurable() -> None:
    extractor = FakeExtractor(pages={"act.pdf": act_pages()})
    pipeline = IngestPipeline(extractor=extractor, chunking=ChunkingConfig(max_tokens=10))

    document = asyncio.run(pipeline.ingest(source_for("act.pdf")))

    assert len(document.chunks) > 2
    assert all(chunk.token_estimate <= 10 for chunk in document.chunks)
