"""Chunking of the outline into token-bounded, section-tagged units."""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Iterator, List, Tuple

from .models import Chunk, StructureNode

LOGGER = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
_SENTENCE_BREAK_RE = re.compile(r"(?<=[.!?;:])\s+")


def estimate_tokens(text: str) -> int:
    """Rough token estimate used across the package (about four characters per token)."""

    return math.ceil(len(text) / CHARS_PER_TOKEN)


@dataclass(slots=True)
class ChunkingConfig:
    max_tokens: int = 800


class StructureChunker:
    """Walk the outline depth-first and emit chunks that never exceed ``max_tokens``."""

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()
        if self.config.max_tokens < 1:
            raise ValueError("max_tokens must be a positive integer")

    @property
    def max_chars(self) -> int:
        return self.config.max_tokens * CHARS_PER_TOKEN

    def chunk(self, root: StructureNode) -> List[Chunk]:
        chunks: List[Chunk] = []
        for node in root.walk():
            if not node.text.strip():
                continue
            for piece in self.split_text(node.text):
                chunk = Chunk(
                    id=f"chunk_{len(chunks)}",
                    content=piece,
                    section_path=node.section_path,
                    token_estimate=estimate_tokens(piece),
                    node_id=node.id,
                    page_start=node.page_start,
                    page_end=node.page_end,
                )
                LOGGER.debug("Chunk %s from %s (%s tokens)", chunk.id, node.id, chunk.token_estimate)
                chunks.append(chunk)
        return chunks

    def split_text(self, text: str) -> List[str]:
        """Split ``text`` preferring paragraph, then sentence, then word boundaries."""

        text = text.strip()
        if not text:
            return []
        if len(text) <= self.max_chars:
            return [text]

        pieces: List[str] = []
        current = ""
        for unit, joiner in self._units(text):
            candidate = f"{current}{joiner}{unit}" if current else unit
            if len(candidate) <= self.max_chars:
                current = candidate
                continue
            if current:
                pieces.append(current)
            current = unit
        if current:
            pieces.append(current)
        return pieces

    def _units(self, text: str) -> Iterator[Tuple[str, str]]:
        limit = self.max_chars
        for paragraph in (part.strip() for part in text.split("\n\n")):
            if not paragraph:
                continue
            if len(paragraph) <= limit:
                yield paragraph, "\n\n"
                continue
            first = True
            for sentence in _SENTENCE_BREAK_RE.split(paragraph):
                joiner = "\n\n" if first else " "
                first = False
                if len(sentence) <= limit:
                    yield sentence, joiner
                    continue
                for word in self._split_words(sentence):
                    yield word, joiner
                    joiner = " "

    def _split_words(self, sentence: str) -> Iterator[str]:
        limit = self.max_chars
        for word in sentence.split():
            if len(word) <= limit:
                yield word
                continue
            for start in range(0, len(word), limit):
                yield word[start : start + limit]


__all__ = ["ChunkingConfig", "StructureChunker", "estimate_tokens"]
