"""Heuristic heading detection over normalised text runs."""
from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from .models import NormalizedPage, StructuralElement, TextRun

LOGGER = logging.getLogger(__name__)

HEADING_THRESHOLD = 0.5

_CHAPTER_RE = re.compile(r"^(?i:(PART|CHAPTER|SCHEDULE|TITLE))\s+([IVXLC]+|\d+[A-Z]?|[A-Z])\b")
_SECTION_RE = re.compile(r"^(SECTION|ARTICLE)\s+(\d+[A-Z]?)\b", re.IGNORECASE)
_DOTTED_RE = re.compile(r"^(\d{1,3}(?:\.\d{1,3})*)[.)]?\s+\S")
_LETTERED_RE = re.compile(r"^\(([a-z]{1,4}|\d{1,3})\)\s+")
_ROMAN_RE = re.compile(r"^([IVX]+)[.)]\s+")
_LIST_RE = re.compile(r"^(?:[-•*▪]\s+|\d+\)\s)")
_HEADING_WORDS_RE = re.compile(r"^(part|chapter|section|article|schedule|subsection|sub-section)\b", re.IGNORECASE)


@dataclass(slots=True)
class DocumentStats:
    """Document-wide measurements heading rules compare against."""

    modal_font_size: float
    median_gap: float

    @classmethod
    def from_runs(cls, runs: Sequence[TextRun]) -> "DocumentStats":
        if not runs:
            return cls(modal_font_size=12.0, median_gap=0.0)
        # Weight by characters so body text dominates the mode.
        weights: Counter[float] = Counter()
        for run in runs:
            weights[round(run.font_size, 1)] += len(run.text)
        modal = weights.most_common(1)[0][0]
        gaps = sorted(run.gap_before for run in runs if run.gap_before > 0)
        median = gaps[len(gaps) // 2] if gaps else 0.0
        return cls(modal_font_size=modal or 12.0, median_gap=median)


@runtime_checkable
class HeadingPolicy(Protocol):
    """Strategy deciding whether a run is a heading and at which rank."""

    def classify(self, run: TextRun, stats: DocumentStats) -> StructuralElement:
        ...


def is_all_caps(text: str) -> bool:
    letters = [char for char in text if char.isalpha()]
    if len(letters) < 3:
        return False
    joined = "".join(letters)
    return joined.isupper()


def detect_numbering(text: str) -> Optional[str]:
    """Return the numbering token of a run such as ``PART I``, ``12.3`` or ``a``."""

    stripped = text.strip()
    match = _CHAPTER_RE.match(stripped)
    if match:
        return f"{match.group(1).upper()} {match.group(2).upper()}"
    match = _SECTION_RE.match(stripped)
    if match:
        return f"{match.group(1).upper()} {match.group(2)}"
    match = _DOTTED_RE.match(stripped)
    if match:
        return match.group(1)
    match = _LETTERED_RE.match(stripped)
    if match:
        return match.group(1)
    match = _ROMAN_RE.match(stripped)
    if match:
        return match.group(1)
    return None


class DefaultHeadingPolicy:
    """Score headings from numbering, capitalisation, font size and spacing."""

    def __init__(self, threshold: float = HEADING_THRESHOLD, max_heading_chars: int = 200) -> None:
        self.threshold = threshold
        self.max_heading_chars = max_heading_chars

    def classify(self, run: TextRun, stats: DocumentStats) -> StructuralElement:
        text = run.text.strip()
        numbering = detect_numbering(text)
        caps = is_all_caps(text)
        font_ratio = run.font_size / stats.modal_font_size if stats.modal_font_size else 1.0
        confidence = self.confidence(text, numbering, caps, font_ratio, run.gap_before, stats)

        if confidence > self.threshold and len(text) <= self.max_heading_chars:
            return StructuralElement(
                kind="heading",
                level=self.rank(text, numbering, caps, font_ratio),
                text=text,
                page_number=run.page_number,
                confidence=confidence,
                numbering=numbering,
            )

        is_list_item = bool(_LIST_RE.match(text))
        return StructuralElement(
            kind="list-item" if is_list_item else "paragraph",
            level=0,
            text=text,
            page_number=run.page_number,
            confidence=1.0 - confidence,
            numbering=numbering if is_list_item else None,
        )

    @staticmethod
    def font_score(font_ratio: float) -> float:
        if font_ratio >= 1.3:
            return 1.0
        if font_ratio >= 1.15:
            return 0.8
        if font_ratio >= 1.0:
            return 0.5
        return 0.2

    def confidence(
        self,
        text: str,
        numbering: Optional[str],
        caps: bool,
        font_ratio: float,
        gap: float,
        stats: DocumentStats,
    ) -> float:
        score = 0.0
        if numbering:
            score += 0.4
        if caps:
            score += 0.3
        score += self.font_score(font_ratio) * 0.2
        if stats.median_gap and gap > stats.median_gap * 1.5:
            score += 0.1
        if len(text) < 100:
            score += 0.1
        if len(text) > 200:
            score -= 0.2
        if _HEADING_WORDS_RE.match(text):
            score += 0.2
        # A numbered line that runs on like a sentence is a clause, not a title.
        if numbering and len(text) > 120 and text.rstrip().endswith((".", ";", ":")):
            score -= 0.3
        return min(1.0, max(0.0, score))

    @staticmethod
    def rank(text: str, numbering: Optional[str], caps: bool, font_ratio: float) -> int:
        if _CHAPTER_RE.match(text):
            return 1
        if _SECTION_RE.match(text):
            return 2
        if numbering and _DOTTED_RE.match(text):
            return numbering.count(".") + 2
        if numbering and _LETTERED_RE.match(text):
            return 4
        if numbering and _ROMAN_RE.match(text):
            return 1
        if caps:
            return 1 if font_ratio >= 1.15 else 2
        return 2 if font_ratio >= 1.3 else 3


def detect_structure(
    pages: Sequence[NormalizedPage], policy: HeadingPolicy | None = None
) -> List[StructuralElement]:
    """Classify every run into a flat, ordered list of structural elements."""

    policy = policy or DefaultHeadingPolicy()
    runs = [run for page in pages for run in page.runs if run.text.strip()]
    stats = DocumentStats.from_runs(runs)

    elements: List[StructuralElement] = []
    for run in runs:
        try:
            element = policy.classify(run, stats)
        except Exception as error:
            LOGGER.warning("Heading policy failed on page %s; treating run as body: %s", run.page_number, error)
            element = StructuralElement(
                kind="paragraph", level=0, text=run.text.strip(), page_number=run.page_number, confidence=1.0
            )
        elements.append(element)
    return elements


__all__ = [
    "DefaultHeadingPolicy",
    "DocumentStats",
    "HeadingPolicy",
    "detect_numbering",
    "detect_structure",
    "is_all_caps",
]
