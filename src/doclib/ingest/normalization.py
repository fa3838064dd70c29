"""Text normalisation: positioned items -> cleaned per-page runs."""
from __future__ import annotations

import re
import unicodedata
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, List, Sequence

from .models import ExtractedPage, NormalizedPage, TextItem, TextRun

_WHITESPACE_RE = re.compile(r"\s+")
_DIGITS_RE = re.compile(r"\d+")
_HYPHEN_BREAK_RE = re.compile(r"[A-Za-z]-$")


def normalize_text(text: str) -> str:
    """Normalise Unicode representation and collapse all whitespace."""

    normalized = unicodedata.normalize("NFC", text)
    normalized = normalized.replace("\u00ad", "")
    return _WHITESPACE_RE.sub(" ", normalized).strip()


@dataclass(slots=True)
class NormalizationConfig:
    line_tolerance: float = 3.0
    paragraph_gap_ratio: float = 1.6
    font_tolerance: float = 0.5
    repeat_ratio: float = 0.5


@dataclass(slots=True)
class _Line:
    text: str
    font_size: float
    y: float


def normalize_pages(
    pages: Sequence[ExtractedPage], config: NormalizationConfig | None = None
) -> List[NormalizedPage]:
    """Turn extracted pages into runs of text, dropping repeated headers and footers."""

    config = config or NormalizationConfig()
    page_lines = [_group_lines(page.items, config.line_tolerance) for page in pages]
    repeating = _detect_repeating(page_lines, config.repeat_ratio)

    normalized: List[NormalizedPage] = []
    for page, lines in zip(pages, page_lines):
        lines = _strip_repeating(lines, repeating)
        runs = _merge_runs(lines, page.page_number, config)
        if runs:
            normalized.append(NormalizedPage(page_number=page.page_number, runs=runs))
    return normalized


def _group_lines(items: Iterable[TextItem], tolerance: float) -> List[_Line]:
    ordered = sorted(items, key=lambda item: (item.y, item.x))
    rows: List[List[TextItem]] = []
    for item in ordered:
        if rows and abs(rows[-1][0].y - item.y) <= tolerance:
            rows[-1].append(item)
        else:
            rows.append([item])

    lines: List[_Line] = []
    for row in rows:
        row.sort(key=lambda item: item.x)
        text = normalize_text(" ".join(item.text for item in row))
        if not text:
            continue
        lines.append(_Line(text=text, font_size=max(item.font_size for item in row), y=row[0].y))
    return lines


def _line_key(text: str) -> str:
    return _DIGITS_RE.sub("#", text.strip().lower())


def _detect_repeating(page_lines: Sequence[Sequence[_Line]], ratio: float) -> set[str]:
    non_empty = [lines for lines in page_lines if lines]
    edges: Counter[str] = Counter()
    for lines in non_empty:
        keys = {_line_key(lines[0].text), _line_key(lines[-1].text)}
        edges.update(keys)

    threshold = max(2.0, len(non_empty) * ratio)
    return {key for key, count in edges.items() if count >= threshold and len(key) > 3}


def _strip_repeating(lines: List[_Line], repeating: set[str]) -> List[_Line]:
    if not repeating or not lines:
        return lines
    start, end = 0, len(lines)
    if _line_key(lines[0].text) in repeating:
        start = 1
    if end > start and _line_key(lines[-1].text) in repeating:
        end -= 1
    return lines[start:end]


def _join_lines(previous: str, following: str) -> str:
    if _HYPHEN_BREAK_RE.search(previous) and following[:1].islower():
        return previous[:-1] + following
    return f"{previous} {following}"


def _merge_runs(lines: Sequence[_Line], page_number: int, config: NormalizationConfig) -> List[TextRun]:
    runs: List[TextRun] = []
    current: _Line | None = None
    current_gap = 0.0
    previous: _Line | None = None

    for line in lines:
        gap = line.y - previous.y if previous is not None else 0.0
        if current is not None and previous is not None:
            size = max(previous.font_size, line.font_size)
            same_font = abs(previous.font_size - line.font_size) <= config.font_tolerance
            if same_font and gap <= config.paragraph_gap_ratio * size:
                current.text = _join_lines(current.text, line.text)
                previous = line
                continue
            runs.append(_to_run(current, current_gap, page_number))
        current = _Line(text=line.text, font_size=line.font_size, y=line.y)
        current_gap = gap
        previous = line

    if current is not None:
        runs.append(_to_run(current, current_gap, page_number))
    return runs


def _to_run(line: _Line, gap: float, page_number: int) -> TextRun:
    return TextRun(
        text=normalize_text(line.text),
        font_size=line.font_size,
        y=line.y,
        gap_before=max(gap, 0.0),
        page_number=page_number,
    )


__all__ = ["NormalizationConfig", "normalize_pages", "normalize_text"]
