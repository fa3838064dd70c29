"""Structure-aware ingestion and retrieval over approved reference documents."""
from __future__ import annotations

from .catalog import Catalog, CatalogEntry, default_catalog, load_catalog
from .errors import CacheError, DocLibError, SourceError, UnknownDocumentError
from .ingest.models import DocumentSource
from .ingest.pipeline import IngestedDocument, IngestPipeline
from .library import ContextResult, DocumentLibrary
from .query import QueryIntent, assemble_context, detect_intent, query_document

__all__ = [
    "CacheError",
    "Catalog",
    "CatalogEntry",
    "ContextResult",
    "DocLibError",
    "DocumentLibrary",
    "DocumentSource",
    "IngestPipeline",
    "IngestedDocument",
    "QueryIntent",
    "SourceError",
    "UnknownDocumentError",
    "assemble_context",
    "default_catalog",
    "detect_intent",
    "load_catalog",
    "query_document",
]
