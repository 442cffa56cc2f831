"""Bulk import of popular movies from TMDB into the catalog."""

from __future__ import annotations

import logging

from ..errors import UpstreamError
from ..models import SyncSummary
from ..repositories import MovieRepository
from .catalog import MovieCatalogService
from .tmdb import TMDBClient, movie_from_tmdb

logger = logging.getLogger(__name__)


class CatalogSyncService:
    """Import TMDB's popular listings page by page.

    Pages and items are processed sequentially. A failed page is recorded
    and skipped; a failed item is counted as skipped. Whatever succeeded
    stays in the store, and cached listings are invalidated once at the end.
    """

    def __init__(
        self,
        tmdb: TMDBClient,
        repository: MovieRepository,
        catalog: MovieCatalogService,
    ):
        self._tmdb = tmdb
        self._repository = repository
        self._catalog = catalog

    async def sync(self, pages: int = 5) -> SyncSummary:
        if pages < 1:
            raise ValueError("At least one page must be requested")

        summary = SyncSummary()
        logger.info("Starting TMDB sync for %s page(s)", pages)
        for page in range(1, pages + 1):
            try:
                listing = await self._tmdb.list_popular(page)
            except UpstreamError as exc:
                logger.warning("Error fetching TMDB page %s: %s", page, exc)
                summary.failed_pages.append(page)
                continue
            except Exception:
                logger.exception("Unexpected error fetching TMDB page %s", page)
                summary.failed_pages.append(page)
                continue

            for item in listing.items:
                if await self._import_item(item):
                    summary.imported += 1
                else:
                    summary.skipped += 1

        await self._catalog.invalidate_lists()

        if summary.failed_pages and len(summary.failed_pages) == pages:
            logger.error("TMDB sync fetched no pages; nothing was imported")
        logger.info(
            "TMDB sync finished: imported=%s skipped=%s failed_pages=%s",
            summary.imported,
            summary.skipped,
            summary.failed_pages,
        )
        return summary

    async def _import_item(self, item: dict) -> bool:
        """Import one listing item, returning ``False`` when it was skipped."""

        try:
            external_id = int(item["id"])
        except (KeyError, TypeError, ValueError):
            logger.warning("Skipping TMDB listing without a usable id: %r", item)
            return False

        try:
            if await self._repository.find_by_external_id(external_id) is not None:
                return False
            details = await self._tmdb.get_details(external_id)
            await self._repository.create(movie_from_tmdb(details))
        except (UpstreamError, KeyError, ValueError) as exc:
            logger.warning("Error importing movie %s: %s", external_id, exc)
            return False
        except Exception:
            logger.exception("Unexpected error importing movie %s", external_id)
            return False
        return True
