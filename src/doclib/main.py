import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, TypeVar

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from .api.context import get_library, get_settings
from .api.context import router as context_router
from .logging_config import configure_logging
from .telemetry import log_event

configure_logging()

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


async def _warm_up_library() -> None:
    """Optionally parse the default document before the first request arrives."""

    settings = _resolve_dependency(get_settings)
    if not settings.warm_up_on_start:
        return
    library = _resolve_dependency(get_library)
    try:
        await library.warm_up()
    except Exception as exc:
        log_event(LOGGER, "library.warm_up_failed", level="warning", doc_id=library.catalog.default_id, exc=exc)
        return
    log_event(LOGGER, "library.warm_up_complete", doc_id=library.catalog.default_id)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    await _warm_up_library()
    yield


app = FastAPI(title="Approved Documents Context API", lifespan=lifespan)
app.include_router(context_router)


def _resolve_dependency(factory: Callable[[], T]) -> T:
    """Resolve a dependency while respecting FastAPI overrides."""

    override: Any | None = app.dependency_overrides.get(factory)
    resolved: Any = override if override is not None else factory
    return resolved() if callable(resolved) else resolved


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    """Healthcheck endpoint for the service."""
    return "ok"
