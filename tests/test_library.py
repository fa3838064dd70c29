import asyncio
import gc

import pytest

from conftest import FakeExtractor, act_pages, make_catalog, rates_pages
from doclib.catalog import Catalog, CatalogEntry, default_catalog
from doclib.errors import SourceError, UnknownDocumentError
from doclib.ingest.pipeline import IngestPipeline
from doclib.library import RETRIEVAL_PLACEHOLDER, DocumentLibrary, score_entry


def _library(extractor: FakeExtractor, catalog=None) -> DocumentLibrary:
    return DocumentLibrary(catalog or make_catalog(), IngestPipeline(extractor=extractor))


def test_concurrent_loads_share_one_parse(extractor) -> None:
    extractor.delay = 0.05
    library = _library(extractor)

    async def scenario():
        return await asyncio.gather(*(library.ensure_loaded("admin-act") for _ in range(5)))

    results = asyncio.run(scenario())

    assert extractor.calls == {"admin-act.pdf": 1}
    assert all(result is results[0] for result in results)
    assert library.is_loaded("admin-act")
    assert library.loaded_ids() == ["admin-act"]


def test_different_documents_load_independently(extractor) -> None:
    extractor.delay = 0.01
    library = _library(extractor)

    async def scenario():
        await asyncio.gather(library.ensure_loaded("tax-act"), library.ensure_loaded("admin-act"))

    asyncio.run(scenario())

    assert extractor.calls == {"tax-act.pdf": 1, "admin-act.pdf": 1}
    assert library.loaded_ids() == ["tax-act", "admin-act"]


def test_loaded_documents_are_reused(extractor) -> None:
    library = _library(extractor)

    async def scenario():
        first = await library.ensure_loaded("tax-act")
        second = await library.ensure_loaded("tax-act")
        return first, second

    first, second = asyncio.run(scenario())

    assert first is second
    assert extractor.total_calls == 1


def test_failure_reaches_every_waiter_and_allows_retry(extractor) -> None:
    extractor.delay = 0.01
    extractor.errors["admin-act.pdf"] = SourceError("PDF file is empty: admin-act.pdf")
    library = _library(extractor)

    async def scenario():
        return await asyncio.gather(
            *(library.ensure_loaded("admin-act") for _ in range(3)),
            return_exceptions=True,
        )

    outcomes = asyncio.run(scenario())

    assert all(isinstance(outcome, SourceError) for outcome in outcomes)
    assert extractor.calls == {"admin-act.pdf": 1}
    assert not library.is_loaded("admin-act")

    del extractor.errors["admin-act.pdf"]
    loaded = asyncio.run(library.ensure_loaded("admin-act"))

    assert loaded.entry.id == "admin-act"
    assert extractor.calls == {"admin-act.pdf": 2}


def test_cancelled_waiter_does_not_cancel_the_load(extractor) -> None:
    extractor.delay = 0.05
    library = _library(extractor)

    async def scenario():
        first = asyncio.create_task(library.ensure_loaded("admin-act"))
        await asyncio.sleep(0)
        second = asyncio.create_task(library.ensure_loaded("admin-act"))
        await asyncio.sleep(0)
        first.cancel()
        loaded = await second
        with pytest.raises(asyncio.CancelledError):
            await first
        return loaded

    loaded = asyncio.run(scenario())

    assert loaded.entry.id == "admin-act"
    assert extractor.calls == {"admin-act.pdf": 1}
    assert library.is_loaded("admin-act")


def test_unknown_documents_are_rejected_before_loading(extractor) -> None:
    library = _library(extractor)

    with pytest.raises(UnknownDocumentError) as excinfo:
        asyncio.run(library.ensure_loaded("missing"))

    assert excinfo.value.doc_id == "missing"
    assert extractor.total_calls == 0


def test_warm_up_loads_default_and_can_retry(extractor) -> None:
    extractor.errors["tax-act.pdf"] = SourceError("Failed to load PDF")
    library = _library(extractor)

    with pytest.raises(SourceError):
        asyncio.run(library.warm_up())

    del extractor.errors["tax-act.pdf"]
    asyncio.run(library.warm_up())

    assert library.loaded_ids() == ["tax-act"]


@pytest.mark.parametrize(
    "query, expected",
    [
        ("What is the penalty for late filing of returns?", "tax-administration-act-2025"),
        ("Penalties for late filing", "tax-administration-act-2025"),
        ("What are the personal income tax rates?", "tax-act-2025"),
        ("What does the JRB coordination committee do?", "joint-revenue-board-establishment-act-2025"),
        ("Functions and powers of the Nigeria Revenue Service", "nigeria-revenue-service-establishment-act-2025"),
        ("hello there", "tax-act-2025"),
        ("", "tax-act-2025"),
    ],
)
def test_route_for_query_with_default_catalog(query: str, expected: str) -> None:
    library = DocumentLibrary(default_catalog(), IngestPipeline(extractor=FakeExtractor()))

    assert library.route_for_query(query) == expected


def test_score_entry_phrase_and_partial_matches() -> None:
    entry = make_catalog().get("admin-act")

    assert score_entry("late filing", entry) == 4
    assert score_entry("penalties and returns", entry) == 8
    assert score_entry("tax rates", entry) == 1
    assert score_entry("", entry) == 0


def test_build_context_auto_mode_uses_routed_primary(extractor) -> None:
    library = _library(extractor)

    result = asyncio.run(library.build_context("penalty for late filing"))

    assert result.mode == "auto"
    assert result.primary.id == "admin-act"
    assert result.used_doc_ids == ["admin-act"]
    text = result.context_text
    assert text.startswith("APPROVED DOCUMENTS AVAILABLE")
    assert "- Tax Act\n- Tax Administration Act" in text
    assert "MODE: Auto (route to best matching document)" in text
    assert "PRIMARY DOCUMENT: Tax Administration Act (Test Copy)" in text
    assert "[PART I GENERAL PROVISIONS → 1. Penalty for late filing - Pages 2-3]" in text
    assert "SECONDARY REFERENCE" not in text


def test_build_context_selected_mode_with_placeholder_and_secondary(extractor) -> None:
    library = _library(extractor)

    async def scenario():
        await library.ensure_loaded("admin-act")
        return await library.build_context("late filing penalty", selected_id="tax-act")

    result = asyncio.run(scenario())

    assert result.mode == "selected"
    assert result.primary.id == "tax-act"
    assert result.used_doc_ids == ["tax-act", "admin-act"]
    assert "MODE: User selected a PRIMARY document" in result.context_text
    assert f"PRIMARY DOCUMENT EXCERPTS:\n{RETRIEVAL_PLACEHOLDER}" in result.context_text
    assert "\n\nSECONDARY REFERENCE (minor): Tax Administration Act (Test Copy)\n[" in result.context_text


def test_secondary_requires_an_already_loaded_document(extractor) -> None:
    library = _library(extractor)

    result = asyncio.run(library.build_context("late filing penalty", selected_id="tax-act"))

    assert result.used_doc_ids == ["tax-act"]
    assert extractor.calls == {"tax-act.pdf": 1}


def test_empty_query_falls_back_to_default_document(extractor) -> None:
    library = _library(extractor)

    result = asyncio.run(library.build_context(""))

    assert result.primary.id == "tax-act"
    assert "PRIMARY DOCUMENT: Tax Act (Test Copy)" in result.context_text
    assert RETRIEVAL_PLACEHOLDER not in result.context_text


def test_unknown_selected_id_raises(extractor) -> None:
    library = _library(extractor)

    with pytest.raises(UnknownDocumentError):
        asyncio.run(library.build_context("anything", selected_id="missing"))


def test_pages_fixture_sanity() -> None:
    assert len(act_pages()) == 3
    assert len(rates_pages()) == 1


def test_plural_keywords_route_singular_queries(extractor) -> None:
    catalog = Catalog(
        entries=[
            CatalogEntry(id="general", title="General", short_title="General", source="g.pdf", keywords=("income",)),
            CatalogEntry(id="sanctions", title="Sanctions", short_title="Sanctions", source="s.pdf", keywords=("Penalties",)),
        ],
        default_id="general",
    )
    library = _library(extractor, catalog)

    assert library.route_for_query("what is the penalty for late filing") == "sanctions"
    assert library.route_for_query("unrelated words") == "general"


def test_force_reingest_reparses_a_loaded_document(extractor) -> None:
    library = _library(extractor)

    async def scenario():
        first = await library.ensure_loaded("admin-act")
        extractor.pages["admin-act.pdf"] = rates_pages()
        second = await library.ensure_loaded("admin-act", force_reingest=True)
        return first, second

    first, second = asyncio.run(scenario())

    assert extractor.calls == {"admin-act.pdf": 2}
    assert second is not first
    assert library._loaded["admin-act"] is second
    assert [chunk.content for chunk in second.ingested.chunks] != [chunk.content for chunk in first.ingested.chunks]


def test_failed_force_reingest_keeps_previous_document(extractor) -> None:
    library = _library(extractor)

    async def scenario():
        first = await library.ensure_loaded("admin-act")
        extractor.errors["admin-act.pdf"] = SourceError("Failed to load PDF")
        with pytest.raises(SourceError):
            await library.ensure_loaded("admin-act", force_reingest=True)
        return first

    first = asyncio.run(scenario())

    assert library.is_loaded("admin-act")
    assert library._loaded["admin-act"] is first


def test_failed_load_with_only_cancelled_waiters_is_not_reported_unretrieved(extractor) -> None:
    extractor.delay = 0.02
    extractor.errors["admin-act.pdf"] = SourceError("Failed to load PDF")
    library = _library(extractor)
    unhandled = []

    async def scenario():
        asyncio.get_running_loop().set_exception_handler(lambda loop, context: unhandled.append(context))
        waiter = asyncio.create_task(library.ensure_loaded("admin-act"))
        await asyncio.sleep(0)
        load = library._in_flight["admin-act"]
        waiter.cancel()
        await asyncio.wait([load])
        del load, waiter
        gc.collect()

    asyncio.run(scenario())

    assert not any("never retrieved" in str(context.get("message", "")) for context in unhandled)
    assert not library.is_loaded("admin-act")
