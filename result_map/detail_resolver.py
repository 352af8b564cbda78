import asyncio
import logging
from typing import Dict, Optional, Sequence

from .capabilities import PlaceSearchService
from .errors import EngineError, NotFound, PreconditionUnmet
from .models import DetailedResult


logger = logging.getLogger(__name__)

DETAIL_FIELDS = (
    'name',
    'formatted_address',
    'formatted_phone_number',
    'website',
    'rating',
    'photo',
    'url',
    'opening_hours',
    'price_level',
    'review',
    'type',
    'user_ratings_total',
    'vicinity',
    'geometry',
    'editorial_summary',
    'serves_breakfast',
    'serves_lunch',
    'serves_dinner',
    'serves_brunch',
    'serves_vegetarian_food',
)


class DetailResolver:
    """
    Lazily augments result entries into DetailedResult, caching per id for
    the lifetime of the current result set.

    At most one provider request is in flight per id: concurrent callers for
    the same id await the same pending task.
    """

    def __init__(self, place_service: Optional[PlaceSearchService] = None, fields: Sequence[str] = DETAIL_FIELDS):
        self.place_service = place_service
        self.fields = tuple(fields)
        self._cache: Dict[str, DetailedResult] = {}
        self._pending: Dict[str, asyncio.Task] = {}
        self._generation = 0

    def bind(self, place_service: PlaceSearchService) -> None:
        self.place_service = place_service

    def cached(self, entry_id: str) -> Optional[DetailedResult]:
        return self._cache.get(entry_id)

    def is_pending(self, entry_id: str) -> bool:
        return entry_id in self._pending

    def invalidate(self) -> None:
        """Drop the cache and forget in-flight requests from the previous result set."""
        self._generation += 1
        self._cache.clear()
        self._pending.clear()

    async def resolve(self, entry_id: str) -> DetailedResult:
        if self.place_service is None:
            raise PreconditionUnmet("Detail lookup requested before a place service is attached", entry_id=entry_id)

        cached = self._cache.get(entry_id)
        if cached is not None:
            return cached

        task = self._pending.get(entry_id)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._fetch(entry_id, self._generation))
            self._pending[entry_id] = task
        # shield: one caller going away must not cancel the shared request
        return await asyncio.shield(task)

    async def _fetch(self, entry_id: str, generation: int) -> DetailedResult:
        try:
            detail = await self.place_service.place_details_async(entry_id, self.fields)
        except NotFound:
            logger.info("No details for %s", entry_id)
            raise
        except EngineError as e:
            logger.warning("Detail lookup failed for %s: %s", entry_id, e)
            raise NotFound(f"Details unavailable for {entry_id}: {e.message}", entry_id=entry_id) from e
        finally:
            if generation == self._generation:
                self._pending.pop(entry_id, None)

        if generation == self._generation:
            self._cache[entry_id] = detail
        else:
            logger.debug("Discarding details for %s from a replaced result set", entry_id)
        return detail
