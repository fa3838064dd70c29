"""Structured lifecycle events for ingestion, caching and retrieval."""

from __future__ import annotations

import logging
import time
import traceback
from contextlib import contextmanager
from typing import Any, Iterator, Optional

LOGGER = logging.getLogger("doclib.telemetry")


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    doc_hash: str | None = None,
    doc_id: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Emit a dict-shaped event that the JSON formatter flattens into one line."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if doc_hash:
        event["doc_hash"] = doc_hash
    if doc_id:
        event["doc_id"] = doc_id
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details

    if isinstance(exc, BaseException):
        event["exc"] = _format_exception(exc)
    elif exc is not None:
        event["exc"] = str(exc)

    getattr(logger, level.lower(), logger.info)(event)


def emit_ingest_event(
    step: str,
    *,
    doc_hash: str,
    source: str | None,
    pages: int | None = None,
    chunks: int | None = None,
    language: str | None = None,
    cached: bool | None = None,
    duration_ms: float | None = None,
) -> None:
    details = {
        "source": source,
        "pages": pages,
        "chunks": chunks,
        "language": language,
        "cached": cached,
    }
    log_event(LOGGER, step, doc_hash=doc_hash, duration_ms=duration_ms, details=details)


def emit_cache_event(step: str, *, doc_hash: str, error: BaseException | None = None) -> None:
    log_event(
        LOGGER,
        step,
        level="warning" if error is not None else "debug",
        doc_hash=doc_hash,
        exc=error,
    )


def emit_library_event(step: str, *, doc_id: str, details: dict[str, Any] | None = None) -> None:
    log_event(LOGGER, step, doc_id=doc_id, details=details)


def emit_query_event(*, query: str, intent: str, results: int, duration_ms: float) -> None:
    details = {"query_preview": query[:120], "intent": intent, "results": results}
    log_event(LOGGER, "query.search", duration_ms=duration_ms, details=details)


@contextmanager
def traced_duration(step: str, *, logger: Optional[logging.Logger] = None, **fields: Any) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    except Exception as error:
        log_event(logger or LOGGER, f"{step}.error", level="error", details=fields, exc=error)
        raise
    log_event(
        logger or LOGGER,
        f"{step}.complete",
        level="debug",
        duration_ms=(time.perf_counter() - start) * 1000.0,
        details=fields,
    )


__all__ = [
    "emit_cache_event",
    "emit_ingest_event",
    "emit_library_event",
    "emit_query_event",
    "log_event",
    "traced_duration",
]
