"""Keyword search over a document's chunks.

Scores come from BM25+ over lowercase word tokens. A chunk's section path is
indexed alongside its content so headings act as extra signal. Query terms
are expanded against the vocabulary: exact hits, forward (prefix) hits and
close spellings contribute with decreasing weight.
"""
from __future__ import annotations

import bisect
import difflib
import logging
from typing import Dict, List, Sequence, Tuple

from rank_bm25 import BM25Plus

from .ingest.models import Chunk
from .text import content_terms, tokenize

LOGGER = logging.getLogger(__name__)

EXACT_WEIGHT = 1.0
FORWARD_WEIGHT = 0.8
FUZZY_WEIGHT = 0.6
MIN_FORWARD_CHARS = 3
MAX_FORWARD_TERMS = 12
FUZZY_CUTOFF = 0.8


class DocumentIndex:
    """In-memory BM25 index; rebuilt from chunks whenever a document is loaded."""

    def __init__(self, chunks: Sequence[Chunk]) -> None:
        self._chunk_ids = [chunk.id for chunk in chunks]
        corpus = [tokenize(chunk.content) + tokenize(" ".join(chunk.section_path)) for chunk in chunks]
        self._terms = [set(tokens) for tokens in corpus]
        self._vocabulary = sorted(set().union(*self._terms)) if corpus else []
        self._vocabulary_set = frozenset(self._vocabulary)
        self._bm25 = BM25Plus(corpus) if any(corpus) else None

    def __len__(self) -> int:
        return len(self._chunk_ids)

    @property
    def vocabulary_size(self) -> int:
        return len(self._vocabulary)

    def expand_query(self, query: str) -> Dict[str, float]:
        """Map each vocabulary term the query reaches to its best weight."""

        weights: Dict[str, float] = {}

        def keep(term: str, weight: float) -> None:
            if weight > weights.get(term, 0.0):
                weights[term] = weight

        tokens = content_terms(query)
        for token in dict.fromkeys(tokens):
            if token in self._vocabulary_set:
                keep(token, EXACT_WEIGHT)
            forward = self._forward_terms(token)
            for term in forward:
                keep(term, FORWARD_WEIGHT)
            if token in self._vocabulary_set or forward:
                continue
            for term in difflib.get_close_matches(token, self._vocabulary, n=3, cutoff=FUZZY_CUTOFF):
                keep(term, FUZZY_WEIGHT)
        return weights

    def _forward_terms(self, token: str) -> List[str]:
        if len(token) < MIN_FORWARD_CHARS:
            return []
        terms: List[str] = []
        start = bisect.bisect_left(self._vocabulary, token)
        for term in self._vocabulary[start:]:
            if not term.startswith(token):
                break
            if term != token:
                terms.append(term)
            if len(terms) >= MAX_FORWARD_TERMS:
                break
        return terms

    def search(self, query: str, limit: int = 10) -> List[Tuple[str, float]]:
        """Return ``(chunk_id, relevance)`` pairs, best first, relevance in ``(0, 1]``."""

        if self._bm25 is None or limit <= 0:
            return []
        weights = self.expand_query(query)
        if not weights:
            return []

        totals = [0.0] * len(self._chunk_ids)
        for term, weight in weights.items():
            scores = self._bm25.get_scores([term])
            for position, score in enumerate(scores):
                # BM25+ gives every document a floor score; only count actual matches.
                if term in self._terms[position]:
                    totals[position] += weight * float(score)

        matched = [(position, total) for position, total in enumerate(totals) if total > 0]
        if not matched:
            return []
        best = max(total for _, total in matched)
        matched.sort(key=lambda item: (-item[1], item[0]))
        return [(self._chunk_ids[position], total / best) for position, total in matched[:limit]]


def build_index(chunks: Sequence[Chunk]) -> DocumentIndex:
    index = DocumentIndex(chunks)
    LOGGER.debug("Indexed %s chunks (%s terms)", len(index), index.vocabulary_size)
    return index


__all__ = ["DocumentIndex", "build_index"]
