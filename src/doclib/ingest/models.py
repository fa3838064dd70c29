"""Data models used by the ingestion pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Optional


def _require_mapping(payload: Any, kind: str) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValueError(f"{kind} record must be an object, got {type(payload).__name__}")
    return payload


@dataclass(slots=True)
class DocumentSource:
    """Raw input to ingest: either in-memory bytes or a locator (URL or path)."""

    data: Optional[bytes] = None
    url: Optional[str] = None
    filename: Optional[str] = None

    @classmethod
    def from_bytes(cls, data: bytes, filename: str | None = None) -> "DocumentSource":
        return cls(data=data, filename=filename)

    @classmethod
    def from_url(cls, url: str) -> "DocumentSource":
        return cls(url=url)

    @property
    def label(self) -> str:
        return self.url or self.filename or "<bytes>"


@dataclass(slots=True)
class TextItem:
    """One positioned text run as reported by the extractor."""

    text: str
    font_size: float
    x: float
    y: float
    page_number: int
    font_name: Optional[str] = None


@dataclass(slots=True)
class ExtractedPage:
    page_number: int
    items: list[TextItem] = field(default_factory=list)


@dataclass(slots=True)
class TextRun:
    """A block of merged lines sharing font size and vertical rhythm."""

    text: str
    font_size: float
    y: float
    gap_before: float
    page_number: int


@dataclass(slots=True)
class NormalizedPage:
    page_number: int
    runs: list[TextRun] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n\n".join(run.text for run in self.runs)


@dataclass(slots=True)
class StructuralElement:
    """A classified run; ``level`` is the heading rank (0 for body text)."""

    kind: str
    level: int
    text: str
    page_number: int
    confidence: float
    numbering: Optional[str] = None

    @property
    def is_heading(self) -> bool:
        return self.kind == "heading"


@dataclass(frozen=True, slots=True)
class StructureNode:
    """Immutable node of the recovered document outline."""

    id: str
    type: str
    level: int
    title: str
    text: str
    section_path: tuple[str, ...]
    page_start: int
    page_end: int
    numbering: Optional[str] = None
    children: tuple["StructureNode", ...] = ()

    def walk(self) -> Iterator["StructureNode"]:
        """Yield this node and its descendants depth-first, in document order."""

        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "level": self.level,
            "title": self.title,
            "text": self.text,
            "section_path": list(self.section_path),
            "page_start": self.page_start,
            "page_end": self.page_end,
            "numbering": self.numbering,
            "children": [child.to_dict() for child in self.children],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "StructureNode":
        payload = _require_mapping(payload, "structure")
        return cls(
            id=str(payload["id"]),
            type=str(payload["type"]),
            level=int(payload["level"]),
            title=str(payload.get("title", "")),
            text=str(payload.get("text", "")),
            section_path=tuple(payload.get("section_path", ())),
            page_start=int(payload.get("page_start", 0)),
            page_end=int(payload.get("page_end", 0)),
            numbering=payload.get("numbering"),
            children=tuple(cls.from_dict(child) for child in payload.get("children", ())),
        )


@dataclass(frozen=True, slots=True)
class Chunk:
    """A retrievable unit of content tagged with its section path."""

    id: str
    content: str
    section_path: tuple[str, ...]
    token_estimate: int
    node_id: str
    page_start: int
    page_end: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "section_path": list(self.section_path),
            "token_estimate": self.token_estimate,
            "node_id": self.node_id,
            "page_start": self.page_start,
            "page_end": self.page_end,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Chunk":
        payload = _require_mapping(payload, "chunk")
        return cls(
            id=str(payload["id"]),
            content=str(payload["content"]),
            section_path=tuple(payload.get("section_path", ())),
            token_estimate=int(payload["token_estimate"]),
            node_id=str(payload.get("node_id", "")),
            page_start=int(payload.get("page_start", 0)),
            page_end=int(payload.get("page_end", 0)),
        )


@dataclass(slots=True)
class DocumentMetadata:
    ingested_at: float
    page_count: int
    url: Optional[str] = None
    filename: Optional[str] = None
    language: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "filename": self.filename,
            "ingested_at": self.ingested_at,
            "page_count": self.page_count,
            "language": self.language,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "DocumentMetadata":
        payload = _require_mapping(payload, "metadata")
        return cls(
            ingested_at=float(payload.get("ingested_at", 0.0)),
            page_count=int(payload.get("page_count", 0)),
            url=payload.get("url"),
            filename=payload.get("filename"),
            language=payload.get("language"),
        )
