"""High level ingestion pipeline entry point."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..cache import CachedDocument, DocumentCache, InMemoryDocumentCache, SQLiteDocumentCache
from ..config import Settings
from ..errors import SourceError
from ..hashing import hash_source
from ..index import DocumentIndex, build_index
from ..logging_config import AUDIT_LOGGER_NAME
from ..telemetry import emit_cache_event, emit_ingest_event, traced_duration
from .builder import build_structure
from .chunking import ChunkingConfig, StructureChunker
from .extractors import PDFTextExtractor, TextExtractor
from .language import LanguageDetector
from .models import Chunk, DocumentMetadata, DocumentSource, StructureNode
from .normalization import NormalizationConfig, normalize_pages
from .structure import DefaultHeadingPolicy, HeadingPolicy, detect_structure

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class IngestedDocument:
    """A parsed document ready for querying."""

    hash: str
    structure: StructureNode
    chunks: List[Chunk]
    index: DocumentIndex
    metadata: DocumentMetadata

    def chunks_by_id(self) -> Dict[str, Chunk]:
        return {chunk.id: chunk for chunk in self.chunks}


class IngestPipeline:
    """Turn a document source into an :class:`IngestedDocument`, consulting the cache first."""

    _AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)

    def __init__(
        self,
        *,
        extractor: Optional[TextExtractor] = None,
        cache: Optional[DocumentCache] = None,
        chunking: Optional[ChunkingConfig] = None,
        heading_policy: Optional[HeadingPolicy] = None,
        normalization: Optional[NormalizationConfig] = None,
        language_detector: Optional[LanguageDetector] = None,
    ) -> None:
        self.extractor = extractor or PDFTextExtractor()
        self.cache = cache if cache is not None else InMemoryDocumentCache()
        self.chunker = StructureChunker(chunking)
        self.heading_policy = heading_policy or DefaultHeadingPolicy()
        self.normalization = normalization or NormalizationConfig()
        self.language_detector = language_detector or LanguageDetector()

    @classmethod
    def from_settings(cls, settings: Settings) -> "IngestPipeline":
        return cls(
            extractor=PDFTextExtractor(docs_dir=settings.docs_dir, timeout=settings.fetch_timeout),
            cache=SQLiteDocumentCache(settings.cache_path),
            chunking=ChunkingConfig(max_tokens=settings.max_chunk_tokens),
        )

    async def is_ingested(self, source: DocumentSource) -> bool:
        return await self.cache.has(hash_source(source))

    async def ingest(self, source: DocumentSource, force_reingest: bool = False) -> IngestedDocument:
        """Return the parsed document for ``source``.

        Unless ``force_reingest`` is set, a cached record is reused and only the
        search index is rebuilt. Source problems raise :class:`SourceError` and
        leave the cache untouched; a failed cache write only costs the next
        process a re-parse.
        """

        doc_hash = hash_source(source)
        if not force_reingest:
            cached = await self._load_cached(doc_hash)
            if cached is not None:
                emit_ingest_event(
                    "ingest.cache_hit",
                    doc_hash=doc_hash,
                    source=source.label,
                    pages=cached.metadata.page_count,
                    chunks=len(cached.chunks),
                    language=cached.metadata.language,
                    cached=True,
                )
                return cached

        start = time.perf_counter()
        try:
            document = await self._parse(doc_hash, source)
        except SourceError as error:
            self._log_ingest_audit(doc_hash, source, status="failed", error=str(error))
            raise
        duration_ms = (time.perf_counter() - start) * 1000.0

        await self._store(doc_hash, document)
        emit_ingest_event(
            "ingest.parsed",
            doc_hash=doc_hash,
            source=source.label,
            pages=document.metadata.page_count,
            chunks=len(document.chunks),
            language=document.metadata.language,
            cached=False,
            duration_ms=duration_ms,
        )
        self._log_ingest_audit(doc_hash, source, status="parsed", chunks=len(document.chunks))
        return document

    async def _parse(self, doc_hash: str, source: DocumentSource) -> IngestedDocument:
        LOGGER.info("Parsing document %s (%s)", source.label, doc_hash[:12])
        with traced_duration("ingest.extract", doc_hash=doc_hash):
            pages = await self.extractor.extract(source)

        with traced_duration("ingest.structure", doc_hash=doc_hash):
            normalized = normalize_pages(pages, self.normalization)
            elements = detect_structure(normalized, self.heading_policy)
            structure = build_structure(elements)

        with traced_duration("ingest.chunk", doc_hash=doc_hash):
            chunks = self.chunker.chunk(structure)
            index = build_index(chunks)

        language = self.language_detector.detect("\n\n".join(page.text for page in normalized))
        metadata = DocumentMetadata(
            ingested_at=time.time(),
            page_count=len(pages),
            url=source.url,
            filename=source.filename,
            language=language,
        )
        LOGGER.info("Generated %s chunks for %s", len(chunks), source.label)
        return IngestedDocument(hash=doc_hash, structure=structure, chunks=chunks, index=index, metadata=metadata)

    async def _load_cached(self, doc_hash: str) -> Optional[IngestedDocument]:
        try:
            record = await self.cache.get(doc_hash)
        except Exception as error:
            emit_cache_event("cache.read_failed", doc_hash=doc_hash, error=error)
            return None
        if record is None:
            return None
        try:
            chunks = [Chunk.from_dict(payload) for payload in record.chunks]
            structure = StructureNode.from_dict(record.structure)
            metadata = DocumentMetadata.from_dict(record.metadata)
        except (AttributeError, KeyError, TypeError, ValueError) as error:
            emit_cache_event("cache.decode_failed", doc_hash=doc_hash, error=error)
            return None
        return IngestedDocument(
            hash=doc_hash,
            structure=structure,
            chunks=chunks,
            index=build_index(chunks),
            metadata=metadata,
        )

    async def _store(self, doc_hash: str, document: IngestedDocument) -> None:
        record = CachedDocument(
            structure=document.structure.to_dict(),
            chunks=[chunk.to_dict() for chunk in document.chunks],
            metadata=document.metadata.to_dict(),
        )
        try:
            await self.cache.put(doc_hash, record)
        except Exception as error:
            emit_cache_event("cache.write_failed", doc_hash=doc_hash, error=error)

    def _log_ingest_audit(self, doc_hash: str, source: DocumentSource, **fields: object) -> None:
        self._AUDIT_LOGGER.info(
            {
                "event": "ingest_document",
                "doc_hash": doc_hash,
                "source": source.label,
                **fields,
            }
        )


__all__ = ["IngestPipeline", "IngestedDocument"]
