"""Command line helper that parses catalog documents into the durable cache ahead of time."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from dotenv import load_dotenv

from .config import Settings
from .errors import DocLibError
from .library import DocumentLibrary
from .logging_config import configure_logging

LOGGER = logging.getLogger(__name__)


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "doc_ids",
        nargs="*",
        help="Catalog ids to load. Defaults to every approved document.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Re-parse documents even when a cached copy exists.",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Optional .env file to read before resolving settings.",
    )
    return parser.parse_args(argv)


async def warm_cache(
    library: DocumentLibrary, doc_ids: Sequence[str], *, force: bool = False
) -> List[Dict[str, Any]]:
    """Load each document in turn and report what happened to it."""

    report: List[Dict[str, Any]] = []
    for doc_id in doc_ids or [entry.id for entry in library.entries()]:
        try:
            loaded = await library.ensure_loaded(doc_id, force_reingest=force)
        except DocLibError as error:
            LOGGER.error("Failed to load %s: %s", doc_id, error)
            report.append({"id": doc_id, "status": "failed", "error": str(error)})
            continue
        report.append(
            {
                "id": doc_id,
                "status": "loaded",
                "doc_hash": loaded.ingested.hash,
                "chunks": len(loaded.ingested.chunks),
                "pages": loaded.ingested.metadata.page_count,
            }
        )
    return report


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    if args.env_file is not None:
        load_dotenv(dotenv_path=args.env_file)
    else:
        load_dotenv()
    configure_logging()

    library = DocumentLibrary.from_settings(Settings.from_env())
    report = asyncio.run(warm_cache(library, args.doc_ids, force=args.force))
    print(json.dumps(report, indent=2, ensure_ascii=False))
    return 1 if any(item["status"] == "failed" for item in report) else 0


if __name__ == "__main__":
    raise SystemExit(main())
