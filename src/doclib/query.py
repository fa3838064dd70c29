"""Query a loaded document and assemble token-bounded context for a model prompt."""
from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from .ingest.builder import section_path_string
from .ingest.chunking import estimate_tokens
from .ingest.models import Chunk
from .ingest.pipeline import IngestedDocument
from .telemetry import emit_query_event

MAX_CONTEXT_ENTRIES = 8
ENTRY_SEPARATOR = "\n\n---\n\n"
FALLBACK_WORDS = 3
HIGH_RELEVANCE = 0.5
MEDIUM_RELEVANCE = 0.2

_CALCULATION_RE = re.compile(
    r"\d|₦|\$|%|\b(calculate|calculation|compute|how much|rate|rates|amount|naira)\b",
    re.IGNORECASE,
)
_DEFINITION_RE = re.compile(
    r"\b(what is|what are|what does|define|definition|meaning|means|meant by)\b",
    re.IGNORECASE,
)
_DEFINITIONAL_TEXT_RE = re.compile(
    r"\b(means|includes|refers to|defined as|shall mean|has the meaning)\b",
    re.IGNORECASE,
)
_NUMERIC_TEXT_RE = re.compile(r"\d|%|₦")
_WORD_RE = re.compile(r"\w+")


class QueryIntent(str, Enum):
    DEFINITION = "definition"
    CALCULATION = "calculation"
    GENERAL = "general"


def detect_intent(query: str) -> QueryIntent:
    if _CALCULATION_RE.search(query):
        return QueryIntent.CALCULATION
    if _DEFINITION_RE.search(query):
        return QueryIntent.DEFINITION
    return QueryIntent.GENERAL


def relevance_label(score: float) -> str:
    if score >= HIGH_RELEVANCE:
        return "high"
    if score >= MEDIUM_RELEVANCE:
        return "medium"
    return "low"


@dataclass(frozen=True, slots=True)
class ScoredChunk:
    chunk: Chunk
    score: float
    relevance: str


@dataclass(slots=True)
class QueryResult:
    query: str
    intent: QueryIntent
    matches: List[ScoredChunk] = field(default_factory=list)


def query_document(
    document: IngestedDocument,
    query: str,
    limit: int = 10,
    min_score: float = 0.01,
) -> QueryResult:
    """Search ``document`` and keep at most ``limit`` matches scoring ``min_score`` or more."""

    start = time.perf_counter()
    intent = detect_intent(query)
    hits = document.index.search(query, limit * 3)
    if not hits:
        hits = _search_word_by_word(document, query, limit * 3)

    chunks = document.chunks_by_id()
    matches = [
        ScoredChunk(chunk=chunks[chunk_id], score=score, relevance=relevance_label(score))
        for chunk_id, score in hits
        if score >= min_score and chunk_id in chunks
    ]
    matches.sort(key=lambda match: match.score, reverse=True)
    matches = matches[:limit]

    emit_query_event(
        query=query,
        intent=intent.value,
        results=len(matches),
        duration_ms=(time.perf_counter() - start) * 1000.0,
    )
    return QueryResult(query=query, intent=intent, matches=matches)


def _search_word_by_word(document: IngestedDocument, query: str, limit: int) -> List[tuple[str, float]]:
    words = [word for word in _WORD_RE.findall(query) if len(word) > 2][:FALLBACK_WORDS]
    best: Dict[str, float] = {}
    for word in words:
        for chunk_id, score in document.index.search(word, limit):
            if score > best.get(chunk_id, 0.0):
                best[chunk_id] = score
    return sorted(best.items(), key=lambda item: item[1], reverse=True)


def _order_for_intent(matches: Sequence[ScoredChunk], intent: QueryIntent) -> List[ScoredChunk]:
    # sorted() is stable, so relevance order survives within each group.
    if intent is QueryIntent.DEFINITION:
        return sorted(matches, key=lambda match: not _DEFINITIONAL_TEXT_RE.search(match.chunk.content))
    if intent is QueryIntent.CALCULATION:
        return sorted(matches, key=lambda match: not _NUMERIC_TEXT_RE.search(match.chunk.content))
    return list(matches)


def page_label(chunk: Chunk) -> str:
    if chunk.page_end > chunk.page_start:
        return f"Pages {chunk.page_start}-{chunk.page_end}"
    return f"Page {chunk.page_start}"


def format_context_entry(chunk: Chunk) -> str:
    label = section_path_string(chunk.section_path) or "Document"
    return f"[{label} - {page_label(chunk)}]\n{chunk.content}"


def assemble_context(
    result: QueryResult,
    max_tokens: int = 2000,
    intent: Optional[QueryIntent] = None,
) -> str:
    """Join the best matches into one context string within ``max_tokens``.

    Entries are added whole. One that would overflow the budget is skipped and
    later, smaller entries may still fit; a chunk is never cut mid-text.
    """

    if not result.matches:
        return ""
    ordered = _order_for_intent(result.matches, intent or result.intent)

    entries: List[str] = []
    for match in ordered[:MAX_CONTEXT_ENTRIES]:
        entry = format_context_entry(match.chunk)
        if estimate_tokens(ENTRY_SEPARATOR.join([*entries, entry])) > max_tokens:
            continue
        entries.append(entry)
    return ENTRY_SEPARATOR.join(entries)


__all__ = [
    "QueryIntent",
    "QueryResult",
    "ScoredChunk",
    "assemble_context",
    "detect_intent",
    "format_context_entry",
    "page_label",
    "query_document",
    "relevance_label",
]
