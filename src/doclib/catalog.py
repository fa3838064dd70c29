"""Catalog of approved reference documents and their routing keywords."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Sequence, Tuple

from .errors import DocLibError, UnknownDocumentError
from .ingest.models import DocumentSource

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DocumentGrade:
    score: int
    label: str
    reason: str


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    """An approved document; ``source`` is a URL or a path under the docs directory."""

    id: str
    title: str
    short_title: str
    source: str
    keywords: Tuple[str, ...] = ()
    description: str = ""
    filename: Optional[str] = None
    grade: Optional[DocumentGrade] = None

    def to_source(self) -> DocumentSource:
        return DocumentSource(url=self.source, filename=self.filename)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "short_title": self.short_title,
            "source": self.source,
            "keywords": list(self.keywords),
            "description": self.description,
            "filename": self.filename,
        }
        if self.grade is not None:
            payload["grade"] = {"score": self.grade.score, "label": self.grade.label, "reason": self.grade.reason}
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "CatalogEntry":
        grade = payload.get("grade")
        filename = payload.get("filename")
        return cls(
            id=str(payload["id"]),
            title=str(payload["title"]),
            short_title=str(payload.get("short_title") or payload["title"]),
            source=str(payload.get("source") or filename),
            keywords=tuple(str(keyword) for keyword in payload.get("keywords", ())),
            description=str(payload.get("description", "")),
            filename=filename,
            grade=DocumentGrade(int(grade["score"]), str(grade["label"]), str(grade["reason"])) if grade else None,
        )


@dataclass(slots=True)
class Catalog:
    entries: Sequence[CatalogEntry]
    default_id: str
    _by_id: Dict[str, CatalogEntry] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.entries = tuple(self.entries)
        self._by_id = {}
        for entry in self.entries:
            if entry.id in self._by_id:
                raise DocLibError(f"Duplicate catalog id: {entry.id}")
            self._by_id[entry.id] = entry
        if self.default_id not in self._by_id:
            raise UnknownDocumentError(self.default_id)

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._by_id

    def get(self, doc_id: str) -> CatalogEntry:
        try:
            return self._by_id[doc_id]
        except KeyError:
            raise UnknownDocumentError(doc_id) from None

    @property
    def default(self) -> CatalogEntry:
        return self._by_id[self.default_id]


def _entry(
    doc_id: str,
    title: str,
    short_title: str,
    filename: str,
    keywords: Sequence[str],
    description: str,
    grade: DocumentGrade,
) -> CatalogEntry:
    return CatalogEntry(
        id=doc_id,
        title=title,
        short_title=short_title,
        source=filename,
        keywords=tuple(keywords),
        description=description,
        filename=filename,
        grade=grade,
    )


DEFAULT_DOCUMENT_ID = "tax-act-2025"


def default_catalog() -> Catalog:
    """The approved 2025 Nigerian tax acts, served from the docs directory."""

    entries = [
        _entry(
            "tax-act-2025",
            "Nigeria Tax Act, 2025 (Final Approved Copy for Print)",
            "Tax Act 2025",
            "Final Approved Copy for Print  NIGERIA TAX ACT 2025.pdf",
            [
                "tax act",
                "personal income tax",
                "rates",
                "brackets",
                "section",
                "allowance",
                "deduction",
                "exemption",
                "chargeable income",
                "assessable income",
                "vat",
                "withholding",
                "stamp duty",
            ],
            "Primary reference for tax provisions, definitions, rates/brackets, reliefs, deductions, "
            "and general tax rules.",
            DocumentGrade(100, "A", "Final approved copy for print."),
        ),
        _entry(
            "tax-administration-act-2025",
            "Nigeria Tax Administration Act, 2025 (Approved Copy to Print)",
            "Tax Administration Act 2025",
            "Approved Copy to Print NIGERIA TAX ADMINISTRATION ACT, 2025.pdf",
            [
                "tax administration",
                "filing",
                "returns",
                "assessment",
                "enforcement",
                "penalty",
                "interest",
                "audit",
                "objection",
                "appeal",
                "tin",
                "registration",
                "payment",
            ],
            "Processes and obligations: registration, filing/returns, assessments, penalties, audits, "
            "disputes/appeals, payments.",
            DocumentGrade(95, "A", "Approved copy to print."),
        ),
        _entry(
            "nigeria-revenue-service-establishment-act-2025",
            "Nigeria Revenue Service (Establishment) Act, 2025 (Approved Copy to Print)",
            "Nigeria Revenue Service Act 2025",
            "Approved Copy to Print. Nigeria Revenue Service (Establishment) Act, 2025-1.pdf",
            [
                "revenue service",
                "nigeria revenue service",
                "nrs",
                "establishment",
                "functions",
                "powers",
                "governance",
                "collection",
                "administration",
                "compliance",
            ],
            "Institutional framework and powers of the Nigeria Revenue Service: governance, functions, "
            "administration and enforcement roles.",
            DocumentGrade(92, "A", "Approved copy to print."),
        ),
        _entry(
            "joint-revenue-board-establishment-act-2025",
            "Joint Revenue Board of Nigeria (Establishment) Act, 2025 (Approved Copy to Print)",
            "Joint Revenue Board Act 2025",
            "Approved Copy to Print Joint Revenue Board of Nigeria (Establishment) Act, 2025 B.pdf",
            [
                "joint revenue board",
                "jrb",
                "establishment",
                "coordination",
                "harmonization",
                "tax administration",
                "intergovernmental",
                "board",
                "committee",
            ],
            "Coordination and intergovernmental framework: Joint Revenue Board establishment, functions "
            "and governance.",
            DocumentGrade(90, "A", "Approved copy to print."),
        ),
    ]
    return Catalog(entries=entries, default_id=DEFAULT_DOCUMENT_ID)


def load_catalog(path: Path | str) -> Catalog:
    """Read a catalog file shaped as ``{"default_id": ..., "documents": [...]}``."""

    path = Path(path)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise DocLibError(f"Failed to read catalog {path}: {exc}") from exc

    try:
        entries = [CatalogEntry.from_dict(item) for item in payload["documents"]]
        default_id = str(payload.get("default_id") or entries[0].id)
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise DocLibError(f"Malformed catalog {path}: {exc}") from exc
    LOGGER.info("Loaded %s catalog entries from %s", len(entries), path)
    return Catalog(entries=entries, default_id=default_id)


__all__ = [
    "Catalog",
    "CatalogEntry",
    "DEFAULT_DOCUMENT_ID",
    "DocumentGrade",
    "default_catalog",
    "load_catalog",
]
