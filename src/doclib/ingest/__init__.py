"""Document ingestion: extraction, normalisation, structure recovery and chunking."""
from __future__ import annotations

from .models import Chunk, DocumentMetadata, DocumentSource, StructureNode

__all__ = ["Chunk", "DocumentMetadata", "DocumentSource", "StructureNode"]
