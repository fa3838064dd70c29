"""Process-wide registry of approved documents with keyword routing."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .catalog import Catalog, CatalogEntry, default_catalog, load_catalog
from .config import Settings
from .ingest.pipeline import IngestedDocument, IngestPipeline
from .query import assemble_context, query_document
from .telemetry import emit_library_event
from .text import normalize_for_match, tokenize

LOGGER = logging.getLogger(__name__)

PHRASE_SCORE = 4
PARTIAL_SCORE = 1
ROUTING_THRESHOLD = 1
PRIMARY_LIMIT = 8
PRIMARY_MIN_SCORE = 0.2
RETRIEVAL_PLACEHOLDER = "[Approved document retrieval is initializing. Please wait a moment and try again.]"


@dataclass(slots=True)
class LoadedDocument:
    entry: CatalogEntry
    ingested: IngestedDocument


@dataclass(slots=True)
class ContextResult:
    primary: CatalogEntry
    mode: str
    used_doc_ids: List[str] = field(default_factory=list)
    context_text: str = ""


def _contains_phrase(tokens: Sequence[str], phrase: Sequence[str]) -> bool:
    width = len(phrase)
    return any(list(tokens[start : start + width]) == list(phrase) for start in range(len(tokens) - width + 1))


def score_entry(query: str, entry: CatalogEntry) -> int:
    """Keyword score of ``entry`` for ``query``.

    A keyword found as a whole phrase scores 4; otherwise any one of its words
    scores 1. Words are compared after plural folding.
    """

    query_tokens = tokenize(normalize_for_match(query))
    if not query_tokens:
        return 0
    query_terms = set(query_tokens)

    score = 0
    for keyword in entry.keywords:
        keyword_tokens = tokenize(normalize_for_match(keyword))
        if not keyword_tokens:
            continue
        if _contains_phrase(query_tokens, keyword_tokens):
            score += PHRASE_SCORE
        elif any(token in query_terms for token in keyword_tokens):
            score += PARTIAL_SCORE
    return score


def _retrieve_exception(task: asyncio.Task[LoadedDocument]) -> None:
    # Waiters may all have been cancelled; mark the failure as seen.
    if not task.cancelled():
        task.exception()


class DocumentLibrary:
    """Load catalog documents at most once and build prompt context from them."""

    def __init__(self, catalog: Optional[Catalog] = None, pipeline: Optional[IngestPipeline] = None) -> None:
        self.catalog = catalog or default_catalog()
        self.pipeline = pipeline or IngestPipeline()
        self._loaded: Dict[str, LoadedDocument] = {}
        self._in_flight: Dict[str, asyncio.Task[LoadedDocument]] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "DocumentLibrary":
        catalog = load_catalog(settings.catalog_path) if settings.catalog_path else default_catalog()
        return cls(catalog=catalog, pipeline=IngestPipeline.from_settings(settings))

    def entries(self) -> Sequence[CatalogEntry]:
        return self.catalog.entries

    def is_loaded(self, doc_id: str) -> bool:
        return doc_id in self._loaded

    def loaded_ids(self) -> List[str]:
        return [entry.id for entry in self.catalog if entry.id in self._loaded]

    async def ensure_loaded(self, doc_id: str, force_reingest: bool = False) -> LoadedDocument:
        """Return the loaded document, sharing one load among concurrent callers.

        Waiters are shielded: cancelling one caller does not cancel the load the
        others are waiting on. A failed load reaches every waiter and the next
        call starts a fresh attempt.
        With ``force_reingest`` an already loaded document is parsed again and
        replaced once the new load succeeds; a load already in flight is joined.
        """

        entry = self.catalog.get(doc_id)
        existing = self._loaded.get(doc_id)
        if existing is not None and not force_reingest:
            return existing

        task = self._in_flight.get(doc_id)
        if task is None:
            task = asyncio.create_task(self._load(entry, force_reingest))
            task.add_done_callback(_retrieve_exception)
            self._in_flight[doc_id] = task
        else:
            emit_library_event("library.load_joined", doc_id=doc_id)
        return await asyncio.shield(task)

    async def _load(self, entry: CatalogEntry, force_reingest: bool) -> LoadedDocument:
        emit_library_event("library.load_started", doc_id=entry.id, details={"source": entry.source})
        try:
            ingested = await self.pipeline.ingest(entry.to_source(), force_reingest=force_reingest)
            loaded = LoadedDocument(entry=entry, ingested=ingested)
            self._loaded[entry.id] = loaded
            emit_library_event(
                "library.loaded",
                doc_id=entry.id,
                details={"doc_hash": ingested.hash, "chunks": len(ingested.chunks)},
            )
            return loaded
        except Exception:
            LOGGER.exception("Failed to load approved document %s", entry.id)
            raise
        finally:
            self._in_flight.pop(entry.id, None)

    async def warm_up(self) -> LoadedDocument:
        """Load the default document so the first query does not pay for parsing."""

        return await self.ensure_loaded(self.catalog.default_id)

    def route_for_query(self, query: str) -> str:
        best_id, best_score = self.catalog.default_id, 0
        for entry in self.catalog:
            score = score_entry(query, entry)
            if score > best_score:
                best_id, best_score = entry.id, score
        if best_score <= ROUTING_THRESHOLD:
            return self.catalog.default_id
        return best_id

    def _context_for(self, loaded: LoadedDocument, query: str, max_tokens: int) -> str:
        result = query_document(loaded.ingested, query, limit=PRIMARY_LIMIT, min_score=PRIMARY_MIN_SCORE)
        return assemble_context(result, max_tokens=max_tokens)

    def _best_secondary(self, query: str, primary_id: str) -> Optional[LoadedDocument]:
        best: Optional[LoadedDocument] = None
        best_score = ROUTING_THRESHOLD
        for entry in self.catalog:
            loaded = self._loaded.get(entry.id)
            if entry.id == primary_id or loaded is None:
                continue
            score = score_entry(query, entry)
            if score > best_score:
                best, best_score = loaded, score
        return best

    async def build_context(
        self,
        query: str,
        selected_id: Optional[str] = None,
        max_primary_tokens: int = 2000,
        max_secondary_tokens: int = 350,
    ) -> ContextResult:
        mode = "selected" if selected_id else "auto"
        primary_id = selected_id or self.route_for_query(query)
        primary = await self.ensure_loaded(primary_id)
        search_query = query.strip() or primary.entry.short_title

        primary_context = self._context_for(primary, search_query, max_primary_tokens) or RETRIEVAL_PLACEHOLDER
        used_doc_ids = [primary_id]

        secondary_snippet = ""
        secondary = self._best_secondary(search_query, primary_id)
        if secondary is not None:
            secondary_context = self._context_for(secondary, search_query, max_secondary_tokens)
            if secondary_context:
                secondary_snippet = f"\n\nSECONDARY REFERENCE (minor): {secondary.entry.title}\n{secondary_context}"
                used_doc_ids.append(secondary.entry.id)

        titles = "\n".join(f"- {entry.short_title}" for entry in self.catalog)
        mode_line = (
            "User selected a PRIMARY document" if mode == "selected" else "Auto (route to best matching document)"
        )
        context_text = (
            "APPROVED DOCUMENTS AVAILABLE (you may reference, but prioritize the PRIMARY one when set):\n"
            f"{titles}\n\n"
            f"MODE: {mode_line}\n"
            f"PRIMARY DOCUMENT: {primary.entry.title}\n\n"
            f"PRIMARY DOCUMENT EXCERPTS:\n{primary_context}{secondary_snippet}"
        )
        emit_library_event("library.context", doc_id=primary_id, details={"mode": mode, "used": used_doc_ids})
        return ContextResult(
            primary=primary.entry,
            mode=mode,
            used_doc_ids=used_doc_ids,
            context_text=context_text,
        )


__all__ = ["ContextResult", "DocumentLibrary", "LoadedDocument", "score_entry"]
