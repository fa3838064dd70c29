import asyncio
import json

from conftest import FakeExtractor, act_pages, make_catalog, rates_pages
from doclib import cli
from doclib.errors import SourceError
from doclib.ingest.pipeline import IngestPipeline
from doclib.library import DocumentLibrary


def _library(extractor: FakeExtractor) -> DocumentLibrary:
    return DocumentLibrary(make_catalog(), IngestPipeline(extractor=extractor))


def test_warm_cache_loads_every_document_by_default() -> None:
    extractor = FakeExtractor(pages={"tax-act.pdf": rates_pages(), "admin-act.pdf": act_pages()})

    report = asyncio.run(cli.warm_cache(_library(extractor), []))

    assert [item["id"] for item in report] == ["tax-act", "admin-act"]
    assert all(item["status"] == "loaded" for item in report)
    assert report[1]["chunks"] == 2


def test_warm_cache_reports_failures_and_unknown_ids() -> None:
    extractor = FakeExtractor(errors={"tax-act.pdf": SourceError("Invalid PDF header in tax-act.pdf")})

    report = asyncio.run(cli.warm_cache(_library(extractor), ["tax-act", "missing"]))

    assert [item["status"] for item in report] == ["failed", "failed"]
    assert "Invalid PDF header" in report[0]["error"]
    assert report[1]["error"] == "Approved document not found: missing"


def test_main_reads_env_file_and_prints_report(tmp_path, monkeypatch, capsys) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text(f"DOCLIB_CACHE_PATH={tmp_path / 'cache.sqlite3'}\n", encoding="utf-8")
    monkeypatch.setenv("DOCLIB_CACHE_PATH", "unset")
    monkeypatch.delenv("DOCLIB_CACHE_PATH")
    monkeypatch.setenv("DOCLIB_LOG_DIR", str(tmp_path / "logs"))
    extractor = FakeExtractor(pages={"tax-act.pdf": rates_pages()})
    seen = {}

    def fake_from_settings(settings):
        seen["cache_path"] = settings.cache_path
        return _library(extractor)

    monkeypatch.setattr(cli.DocumentLibrary, "from_settings", staticmethod(fake_from_settings))

    exit_code = cli.main(["tax-act", "--env-file", str(env_file)])

    assert exit_code == 0
    assert seen["cache_path"] == tmp_path / "cache.sqlite3"
    report = json.loads(capsys.readouterr().out)
    assert report[0]["id"] == "tax-act"
    assert report[0]["status"] == "loaded"
