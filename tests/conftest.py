"""Shared fakes for ingestion, library and API tests."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from doclib.catalog import Catalog, CatalogEntry
from doclib.ingest.models import DocumentSource, ExtractedPage, TextItem

Block = Tuple[str, float]

BODY_SIZE = 11.0


def make_page(page_number: int, blocks: Sequence[Block], *, top: float = 72.0) -> ExtractedPage:
    """Lay out one single-line block per entry with a paragraph-sized gap between them."""

    items: List[TextItem] = []
    y = top
    for text, size in blocks:
        items.append(TextItem(text=text, font_size=size, x=72.0, y=y, page_number=page_number))
        y += size * 2.5
    return ExtractedPage(page_number=page_number, items=items)


def act_pages() -> List[ExtractedPage]:
    return [
        make_page(
            1,
            [
                ("PART I GENERAL PROVISIONS", 16.0),
                ("This Act applies to every person earning income in Nigeria.", BODY_SIZE),
                ("The Service shall administer the provisions of this Act.", BODY_SIZE),
            ],
        ),
        make_page(
            2,
            [
                ("1. Penalty for late filing", 13.0),
                (
                    "A person who fails to file a return within the time allowed is liable "
                    "to a penalty of 100,000 naira.",
                    BODY_SIZE,
                ),
            ],
        ),
        make_page(3, [("The penalty accrues for each month the failure continues.", BODY_SIZE)]),
    ]


def rates_pages() -> List[ExtractedPage]:
    return [
        make_page(
            1,
            [
                ("PART II RATES OF TAX", 16.0),
                ("Income tax rates apply to chargeable income in bands.", BODY_SIZE),
                ("The first 800,000 naira of chargeable income is taxed at 0 percent.", BODY_SIZE),
            ],
        )
    ]


@dataclass
class FakeExtractor:
    """Serve canned pages per source label and count how often each is parsed."""

    pages: Dict[str, List[ExtractedPage]] = field(default_factory=dict)
    errors: Dict[str, Exception] = field(default_factory=dict)
    delay: float = 0.0
    calls: Dict[str, int] = field(default_factory=dict)

    async def extract(self, source: DocumentSource) -> List[ExtractedPage]:
        label = source.label
        self.calls[label] = self.calls.get(label, 0) + 1
        if self.delay:
            await asyncio.sleep(self.delay)
        error = self.errors.get(label)
        if error is not None:
            raise error
        return self.pages.get(label) or act_pages()

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())


def make_catalog(default_id: str = "tax-act") -> Catalog:
    return Catalog(
        entries=[
            CatalogEntry(
                id="tax-act",
                title="Tax Act (Test Copy)",
                short_title="Tax Act",
                source="tax-act.pdf",
                keywords=("tax act", "rates", "allowance", "chargeable income"),
            ),
            CatalogEntry(
                id="admin-act",
                title="Tax Administration Act (Test Copy)",
                short_title="Tax Administration Act",
                source="admin-act.pdf",
                keywords=("tax administration", "filing", "penalty", "returns"),
            ),
        ],
        default_id=default_id,
    )


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor(pages={"tax-act.pdf": rates_pages(), "admin-act.pdf": act_pages()})


@pytest.fixture
def catalog() -> Catalog:
    return make_catalog()


def source_for(label: str, data: Optional[bytes] = None) -> DocumentSource:
    if data is not None:
        return DocumentSource.from_bytes(data, filename=label)
    return DocumentSource.from_url(label)
