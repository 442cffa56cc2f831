"""Populate the catalog from TMDB's popular listings in one run."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import get_settings
from .main import open_services
from .models import SyncSummary

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="populate",
        description="Import popular movies from TMDB into the local catalog.",
    )
    parser.add_argument(
        "--pages",
        type=int,
        default=None,
        help="Number of TMDB listing pages to import (default: SYNC_PAGES).",
    )
    return parser.parse_args(argv)


async def populate(pages: int) -> SyncSummary:
    app_settings = get_settings()
    async with open_services(app_settings) as services:
        if services.sync is None:
            raise RuntimeError("TMDB_API_KEY is not set.")
        return await services.sync.sync(pages)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    pages = args.pages if args.pages is not None else get_settings().sync_default_pages
    if pages < 1:
        print("--pages must be at least 1", file=sys.stderr)
        return 2

    try:
        summary = asyncio.run(populate(pages))
    except RuntimeError as exc:
        logger.error("Catalog population failed: %s", exc)
        return 1

    print(
        "SYNC summary "
        f"imported={summary.imported} "
        f"skipped={summary.skipped} "
        f"failed_pages={len(summary.failed_pages)}"
    )
    return 0


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    raise SystemExit(main())
