"""Exception hierarchy shared across the ingestion and retrieval layers."""
from __future__ import annotations


class DocLibError(Exception):
    """Base class for errors raised by :mod:`doclib`."""


class SourceError(DocLibError):
    """Raised when a document source is empty, truncated or not a readable PDF."""


class CacheError(DocLibError):
    """Raised internally when the durable document cache cannot be used."""


class UnknownDocumentError(DocLibError, KeyError):
    """Raised when a catalog id does not match any approved document."""

    def __init__(self, doc_id: str) -> None:
        super().__init__(f"Approved document not found: {doc_id}")
        self.doc_id = doc_id

    def __str__(self) -> str:  # KeyError would otherwise repr() the message
        return self.args[0]


__all__ = ["CacheError", "DocLibError", "SourceError", "UnknownDocumentError"]
