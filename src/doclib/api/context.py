"""API router exposing the approved document catalog and context assembly."""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..catalog import CatalogEntry
from ..config import Settings
from ..errors import SourceError, UnknownDocumentError
from ..library import DocumentLibrary

router = APIRouter(tags=["documents"])


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


@lru_cache(maxsize=1)
def get_library() -> DocumentLibrary:
    """FastAPI dependency returning the process-wide :class:`DocumentLibrary`."""

    return DocumentLibrary.from_settings(get_settings())


class GradeInfo(BaseModel):
    score: int
    label: str
    reason: str


class DocumentInfo(BaseModel):
    """Catalog entry as exposed over HTTP."""

    id: str
    title: str
    short_title: str
    description: str
    keywords: list[str]
    loaded: bool
    grade: Optional[GradeInfo] = None


class LoadResponse(BaseModel):
    id: str
    loaded: bool
    doc_hash: str
    chunks: int
    pages: int
    language: Optional[str] = None


class ContextRequest(BaseModel):
    """Request body accepted by the context endpoint."""

    query: str = Field("", description="User question used for routing and retrieval.")
    selected_id: Optional[str] = Field(None, description="Catalog id the user pinned as primary document.")
    max_primary_tokens: Optional[int] = Field(None, ge=1, le=32000)
    max_secondary_tokens: Optional[int] = Field(None, ge=1, le=8000)


class ContextResponse(BaseModel):
    primary_id: str
    primary_title: str
    mode: str
    used_doc_ids: list[str]
    context_text: str


def _document_info(entry: CatalogEntry, library: DocumentLibrary) -> DocumentInfo:
    grade = entry.grade
    return DocumentInfo(
        id=entry.id,
        title=entry.title,
        short_title=entry.short_title,
        description=entry.description,
        keywords=list(entry.keywords),
        loaded=library.is_loaded(entry.id),
        grade=GradeInfo(score=grade.score, label=grade.label, reason=grade.reason) if grade else None,
    )


@router.get("/documents", response_model=list[DocumentInfo])
def list_documents(library: DocumentLibrary = Depends(get_library)) -> list[DocumentInfo]:
    """List approved documents and whether each is loaded in this process."""

    return [_document_info(entry, library) for entry in library.entries()]


@router.post("/documents/{doc_id}/load", response_model=LoadResponse)
async def load_document(
    doc_id: str,
    force_reingest: bool = False,
    library: DocumentLibrary = Depends(get_library),
) -> LoadResponse:
    try:
        loaded = await library.ensure_loaded(doc_id, force_reingest=force_reingest)
    except UnknownDocumentError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SourceError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    ingested = loaded.ingested
    return LoadResponse(
        id=doc_id,
        loaded=True,
        doc_hash=ingested.hash,
        chunks=len(ingested.chunks),
        pages=ingested.metadata.page_count,
        language=ingested.metadata.language,
    )


@router.post("/context", response_model=ContextResponse)
async def build_context(
    request: ContextRequest,
    library: DocumentLibrary = Depends(get_library),
    settings: Settings = Depends(get_settings),
) -> ContextResponse:
    """Route the query, load the needed documents and return prompt context."""

    try:
        result = await library.build_context(
            request.query,
            selected_id=request.selected_id or None,
            max_primary_tokens=request.max_primary_tokens or settings.primary_tokens,
            max_secondary_tokens=request.max_secondary_tokens or settings.secondary_tokens,
        )
    except UnknownDocumentError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SourceError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    return ContextResponse(
        primary_id=result.primary.id,
        primary_title=result.primary.title,
        mode=result.mode,
        used_doc_ids=result.used_doc_ids,
        context_text=result.context_text,
    )
