"""Resolve free-text model suggestions into concrete titles."""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from ..models import (
    EnrichedRecommendation,
    ResolvedRecommendation,
    SuggestionStub,
    Title,
    TitleData,
    UnresolvedRecommendation,
)
from ..storage import Storage
from .tmdb import CatalogUnavailableError, TMDBClient

logger = logging.getLogger(__name__)


class RecommendationResolver:
    """Match suggestion stubs against storage first, then the catalog.

    Every stub is resolved independently and concurrently; the output always
    has one entry per input stub, in input order. Catalog hits are written
    back to storage in the background so later lookups find them locally.
    """

    def __init__(self, storage: Storage | None, catalog: TMDBClient | None):
        self._storage = storage
        self._catalog = catalog
        self._background: set[asyncio.Task[None]] = set()

    async def enrich(
        self, stubs: Sequence[SuggestionStub]
    ) -> list[EnrichedRecommendation]:
        if not stubs:
            return []
        return list(await asyncio.gather(*(self._resolve(stub) for stub in stubs)))

    async def drain(self) -> None:
        """Wait for pending write-backs to finish."""

        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def _resolve(self, stub: SuggestionStub) -> EnrichedRecommendation:
        stored = await self._lookup_storage(stub)
        if stored is not None:
            return ResolvedRecommendation(
                **stored.model_dump(),
                reason=stub.reason,
                badges=stub.badges(),
            )

        found = await self._lookup_catalog(stub)
        if found is not None:
            self._schedule_persist(found)
            return ResolvedRecommendation(
                **found.model_dump(),
                reason=stub.reason,
                badges=stub.badges(),
            )

        return UnresolvedRecommendation(
            name=stub.title,
            year=stub.year,
            type=stub.type,
            genres=[stub.genre] if stub.genre else [],
            reason=stub.reason,
            badges=stub.badges(),
        )

    async def _lookup_storage(self, stub: SuggestionStub) -> Title | None:
        if self._storage is None:
            return None
        try:
            matches = await self._storage.search_titles(stub.title, 1)
        except Exception as exc:
            logger.warning("Storage lookup for %r failed: %s", stub.title, exc)
            return None
        return matches[0] if matches else None

    async def _lookup_catalog(self, stub: SuggestionStub) -> TitleData | None:
        if self._catalog is None or not self._catalog.is_configured:
            return None
        try:
            results = await self._catalog.search_titles(stub.title)
        except CatalogUnavailableError as exc:
            logger.warning("Catalog lookup for %r failed: %s", stub.title, exc)
            return None
        except Exception:
            logger.exception("Unexpected error resolving %r via the catalog", stub.title)
            return None
        return results[0] if results else None

    def _schedule_persist(self, title: TitleData) -> None:
        if self._storage is None:
            return
        storage = self._storage

        async def _runner() -> None:
            try:
                await storage.ensure_title(title)
            except Exception as exc:
                logger.debug("Could not store catalog title %s: %s", title.name, exc)

        task = asyncio.create_task(_runner())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
