"""Extraction of positioned text from PDF sources."""
from __future__ import annotations

import asyncio
import io
import logging
from pathlib import Path
from typing import List, Optional, Protocol, runtime_checkable

import httpx
from PyPDF2 import PdfReader

from ..errors import SourceError
from .models import DocumentSource, ExtractedPage, TextItem

LOGGER = logging.getLogger(__name__)

PDF_HEADER = b"%PDF"
MIN_PDF_BYTES = 100
DEFAULT_FONT_SIZE = 12.0


@runtime_checkable
class TextExtractor(Protocol):
    """Boundary for anything that turns a source into positioned page text."""

    async def extract(self, source: DocumentSource) -> List[ExtractedPage]:
        """Return pages in document order, raising :class:`SourceError` on bad input."""
        ...


def validate_pdf_bytes(data: bytes, label: str) -> None:
    if not data:
        raise SourceError(f"PDF file is empty: {label}")
    if len(data) < MIN_PDF_BYTES:
        raise SourceError(f"PDF file is too small to be valid ({len(data)} bytes): {label}")
    header = data[:4]
    if header != PDF_HEADER:
        found = header.decode("latin-1", errors="replace")
        raise SourceError(f"Invalid PDF header in {label}: found {found!r}, expected '%PDF'")


class PDFTextExtractor:
    """Extract text items with font size and position using PyPDF2."""

    def __init__(
        self,
        *,
        docs_dir: Path | None = None,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.docs_dir = docs_dir
        self.timeout = timeout
        self._client = client

    async def extract(self, source: DocumentSource) -> List[ExtractedPage]:
        data = await self._load_bytes(source)
        validate_pdf_bytes(data, source.label)
        pages = await asyncio.to_thread(self._extract_pages, data, source.label)
        if all(not page.items for page in pages):
            raise SourceError(
                f"Failed to extract text from {source.label}; the PDF may be scanned, corrupted or empty"
            )
        return pages

    async def _load_bytes(self, source: DocumentSource) -> bytes:
        if source.data is not None:
            return source.data
        if source.url is None:
            raise SourceError("Document source has neither bytes nor a location")
        if source.url.startswith(("http://", "https://")):
            return await self._fetch(source.url)
        return await asyncio.to_thread(self._read_local, source.url)

    async def _fetch(self, url: str) -> bytes:
        try:
            if self._client is not None:
                response = await self._client.get(url, follow_redirects=True)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SourceError(
                f"Failed to load PDF: {exc.response.status_code} {exc.response.reason_phrase} for {url}"
            ) from exc
        except httpx.HTTPError as exc:
            raise SourceError(f"Failed to load PDF from {url}: {exc}") from exc

        content_type = response.headers.get("content-type", "")
        if content_type and "pdf" not in content_type and "octet-stream" not in content_type:
            LOGGER.warning("Unexpected content type %s for %s", content_type, url)
        return response.content

    def _read_local(self, location: str) -> bytes:
        path = Path(location)
        if not path.is_absolute() and self.docs_dir is not None:
            path = self.docs_dir / path
        try:
            return path.read_bytes()
        except OSError as exc:
            raise SourceError(f"Failed to read PDF at {path}: {exc}") from exc

    def _extract_pages(self, data: bytes, label: str) -> List[ExtractedPage]:
        try:
            reader = PdfReader(io.BytesIO(data), strict=False)
            page_count = len(reader.pages)
        except Exception as exc:
            raise SourceError(f"Invalid PDF structure in {label}: {exc}") from exc

        pages: List[ExtractedPage] = []
        for index in range(page_count):
            page_number = index + 1
            try:
                items = self._extract_items(reader.pages[index], page_number)
            except Exception as error:
                LOGGER.warning("Failed to extract text from PDF page %s of %s: %s", page_number, label, error)
                items = []
            pages.append(ExtractedPage(page_number=page_number, items=items))
        return pages

    @staticmethod
    def _extract_items(page, page_number: int) -> List[TextItem]:
        height = float(page.mediabox.height)
        items: List[TextItem] = []

        def visitor(text, cm, tm, font_dict, font_size):
            if not text or not text.strip():
                return
            # Text space -> user space: tm x cm
            x = tm[4] * cm[0] + tm[5] * cm[2] + cm[4]
            y = tm[4] * cm[1] + tm[5] * cm[3] + cm[5]
            scale = abs(tm[3]) or abs(tm[0]) or 1.0
            size = abs(float(font_size or 0.0) * scale * (abs(cm[3]) or 1.0)) or DEFAULT_FONT_SIZE
            font_name = None
            if font_dict is not None:
                font_name = str(font_dict.get("/BaseFont", "")) or None
            items.append(
                TextItem(
                    text=text.replace("\n", " "),
                    font_size=round(size, 2),
                    x=float(x),
                    y=height - float(y),
                    page_number=page_number,
                    font_name=font_name,
                )
            )

        page.extract_text(visitor_text=visitor)
        return items


__all__ = ["PDFTextExtractor", "TextExtractor", "validate_pdf_bytes"]
