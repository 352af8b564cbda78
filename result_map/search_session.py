"""
Search session orchestration.

A SearchSessionController owns one map session: it turns free-text queries
(or an externally handed-off result list) into a result set, keeps markers in
step with the viewport, resolves selections and derives distance summaries.
"""

import asyncio
import json
import logging
import re
from dataclasses import replace
from typing import Any, Coroutine, Dict, List, Optional, Sequence, Set

from .capabilities import DistanceService, GeocodingService, KeyValueStore, MapSurface, MarkerFactory, PlaceSearchService
from .detail_resolver import DetailResolver
from .distance_aggregator import DistanceAggregator
from .errors import EngineError, NotFound, PreconditionUnmet
from .geo_math import cuisine_label, distance_miles, estimate_travel_time, price_level_label
from .markers import LocationPulse, MarkerLifecycleManager
from .models import Bounds, DetailedResult, DistanceSummary, LatLng, ResultEntry, SelectionKind, SelectionState
from .result_store import ResultStore


logger = logging.getLogger(__name__)

# --- Module-level constants ---
DEFAULT_ANCHOR = LatLng(42.3601, -71.0589)  # Boston, MA
DEFAULT_CITY = 'Boston, MA'
DEFAULT_ZOOM = 15
FOCUS_ZOOM = 16
SEARCH_RADIUS_M = 5000
TILT_3D = 67.5
MAP_TYPES = ('roadmap', 'satellite', '3d')

HANDOFF_RESULTS_KEY = 'selected_results'
HANDOFF_LOCATION_KEY = 'user_location'
MAP_TYPE_KEY = 'preferred_map_type'

LOCATION_REFERENCE = re.compile(r'\b(?:near|on)\s+(.+)', re.IGNORECASE)


def extract_location_reference(query: str) -> Optional[str]:
    """'tacos near Harvard Square' -> 'Harvard Square'"""
    match = LOCATION_REFERENCE.search(query or '')
    if not match:
        return None
    place = match.group(1).strip()
    return place or None


class SearchSessionController:
    """Orchestrates one interactive map session"""

    def __init__(
        self,
        place_service: PlaceSearchService,
        geocoder: GeocodingService,
        distance_service: DistanceService,
        marker_factory: MarkerFactory,
        storage: Optional[KeyValueStore] = None,
        *,
        default_anchor: LatLng = DEFAULT_ANCHOR,
        default_city: Optional[str] = DEFAULT_CITY,
        search_radius: int = SEARCH_RADIUS_M,
        pulse_interval: float = 0.05,
    ):
        self.place_service = place_service
        self.geocoder = geocoder
        self.marker_factory = marker_factory
        self.storage = storage
        self.default_anchor = default_anchor
        self.default_city = default_city
        self.search_radius = search_radius

        self.store = ResultStore()
        self.resolver = DetailResolver()
        self.aggregator = DistanceAggregator(distance_service)
        self.pulse = LocationPulse(marker_factory, interval=pulse_interval)

        self.map_surface: Optional[MapSurface] = None
        self.markers: Optional[MarkerLifecycleManager] = None
        self.selection = SelectionState.none()
        self.distance_summary: Optional[DistanceSummary] = None
        self.map_type = 'roadmap'
        self.is_loading = False

        self._idle_listener = None
        self._submission = 0
        self._summary_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    # --- Map lifecycle ---
    def attach_map(self, map_surface: MapSurface) -> None:
        """Bind the session to a map surface; detail lookups become available from here on."""
        if self.map_surface is not None:
            self.detach_map()
        self.map_surface = map_surface
        self.markers = MarkerLifecycleManager(map_surface, self.marker_factory, on_select=self._on_marker_click)
        self._idle_listener = map_surface.add_listener('idle', self.on_viewport_changed)
        map_surface.set_center(self.default_anchor)
        map_surface.set_zoom(DEFAULT_ZOOM)
        self.resolver.bind(self.place_service)
        logger.info("Map surface attached")

    def detach_map(self) -> None:
        if self.markers is not None:
            self.markers.clear()
        if self.map_surface is not None and self._idle_listener is not None:
            self.map_surface.remove_listener(self._idle_listener)
        self._idle_listener = None
        self.map_surface = None
        self.markers = None

    async def close(self) -> None:
        self.pulse.stop()
        self._cancel_background()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self.detach_map()
        logger.info("Session closed")

    def _require_map(self) -> MapSurface:
        if self.map_surface is None:
            raise PreconditionUnmet("No map surface attached to the session")
        return self.map_surface

    # --- Search ---
    async def submit(self, query: str) -> List[ResultEntry]:
        """Run a text search and replace the result set. Returns the visible subset."""
        map_surface = self._require_map()
        query = (query or '').strip()
        if not query:
            return self.visible_results

        self._submission += 1
        ticket = self._submission
        self.is_loading = True
        try:
            anchor = await self._resolve_anchor(query, map_surface)
            try:
                results = await self.place_service.text_search_async(query, anchor, self.search_radius)
            except EngineError as e:
                logger.warning("Text search failed for %r: %s", query, e)
                results = []
        finally:
            if ticket == self._submission:
                self.is_loading = False

        if ticket != self._submission:
            logger.info("Dropping results for superseded query %r", query)
            return self.visible_results

        logger.info("Search %r returned %d results", query, len(results))
        self._replace_results(results, ranked=False)
        return self.visible_results

    async def _resolve_anchor(self, query: str, map_surface: MapSurface) -> LatLng:
        place = extract_location_reference(query)
        if not place:
            return self.default_anchor
        address = f"{place}, {self.default_city}" if self.default_city else place
        try:
            location = await self.geocoder.geocode_address_async(address)
        except EngineError as e:
            logger.warning("Could not geocode %r, using default anchor: %s", address, e)
            return self.default_anchor
        map_surface.set_center(location)
        map_surface.set_zoom(FOCUS_ZOOM)
        return location

    # --- Preloaded handoff ---
    async def load_preloaded(self, entries: Sequence[ResultEntry], user_location: Optional[LatLng] = None) -> int:
        """
        Show an externally supplied, ranked result set. Entries lacking
        coordinates are backfilled concurrently through the detail channel and
        appear as their lookups complete. Returns the number of markers
        rendered immediately.
        """
        self._require_map()
        ranked = [e if e.rank is not None else replace(e, rank=i) for i, e in enumerate(entries, start=1)]
        if user_location is not None:
            self.store.user_location = user_location
            self.pulse.start(user_location)

        # supersedes any text search still in flight
        self._submission += 1
        self.is_loading = False
        self._replace_results(ranked, ranked=True)

        generation = self.store.generation
        missing = [e.id for e in ranked if e.coordinates is None]
        for entry_id in missing:
            self._spawn(self._backfill(entry_id, generation))
        logger.info("Preloaded %d results (%d awaiting coordinates)", len(ranked), len(missing))
        return len(self.markers)

    async def load_handoff(self, storage: Optional[KeyValueStore] = None) -> int:
        """Consume a handoff payload left in key-value storage by another screen."""
        storage = storage or self.storage
        if storage is None:
            raise PreconditionUnmet("No storage available to read the handoff from")

        entries: List[ResultEntry] = []
        raw_results = storage.get(HANDOFF_RESULTS_KEY)
        if raw_results:
            try:
                entries = [ResultEntry.from_handoff(item) for item in json.loads(raw_results)]
            except (ValueError, KeyError, TypeError) as e:
                logger.error("Error parsing handoff results: %s", e)
            storage.delete(HANDOFF_RESULTS_KEY)

        location = None
        raw_location = storage.get(HANDOFF_LOCATION_KEY)
        if raw_location:
            try:
                location = LatLng.from_dict(json.loads(raw_location))
            except (ValueError, KeyError, TypeError) as e:
                logger.error("Error parsing handoff user location: %s", e)
            storage.delete(HANDOFF_LOCATION_KEY)

        if not entries:
            if location is not None:
                await self.set_user_location(location)
            return 0
        return await self.load_preloaded(entries, location)

    async def _backfill(self, entry_id: str, generation: int) -> None:
        try:
            detail = await self.resolver.resolve(entry_id)
        except EngineError as e:
            logger.warning("Could not resolve coordinates for %s: %s", entry_id, e)
            return
        if generation != self.store.generation:
            return
        if detail.coordinates is None:
            logger.warning("Details for %s carry no coordinates", entry_id)
            return
        merged = self.store.upsert(detail.as_entry())
        if self.markers is not None and self.markers.ranked:
            self.markers.add_ranked(merged, self.store.user_location)

    # --- Viewport ---
    def on_viewport_changed(self, bounds: Optional[Bounds] = None) -> List[ResultEntry]:
        map_surface = self._require_map()
        if bounds is None:
            bounds = map_surface.get_bounds()
        self.store.set_viewport(bounds)
        if not self.markers.ranked:
            self.markers.sync(self.store.visible)
        return self.visible_results

    @property
    def visible_results(self) -> List[ResultEntry]:
        if self.markers is not None and self.markers.ranked:
            # ranked sets are always shown in full
            return [e for e in self.store.entries if e.coordinates is not None]
        return self.store.visible

    # --- Selection ---
    async def select(self, entry_id: str) -> SelectionState:
        self._require_map()
        entry = self.store.get(entry_id)
        if entry is None:
            raise NotFound(f"No result with id {entry_id} in the current result set", entry_id=entry_id)

        self.selection = SelectionState.resolving(entry)
        try:
            detail = await self.resolver.resolve(entry_id)
        except NotFound as e:
            logger.info("Showing partial details for %s: %s", entry_id, e)
            detail = DetailedResult.from_entry(entry)

        current = self.selection
        if current.kind is SelectionKind.RESOLVING and current.entry_id == entry_id:
            self.selection = SelectionState.resolved(detail)
        else:
            logger.debug("Ignoring stale details for %s", entry_id)
        return self.selection

    def clear_selection(self) -> None:
        self.selection = SelectionState.none()

    def _on_marker_click(self, entry: ResultEntry) -> None:
        self._spawn(self.select(entry.id))

    # --- User location and distances ---
    async def set_user_location(self, location: LatLng) -> None:
        self.store.user_location = location
        self.pulse.start(location)
        self._schedule_summary()

    def travel_hint(self, entry: ResultEntry) -> Optional[str]:
        if self.store.user_location is None or entry.coordinates is None:
            return None
        return estimate_travel_time(distance_miles(self.store.user_location, entry.coordinates))

    def _schedule_summary(self) -> None:
        if self._summary_task is not None and not self._summary_task.done():
            self._summary_task.cancel()
        self._summary_task = None
        self.distance_summary = None
        location = self.store.user_location
        if location is None or not len(self.store):
            return
        self._summary_task = self._spawn(self._summarize(self.store.generation, location))

    async def _summarize(self, generation: int, location: LatLng) -> None:
        summary = await self.aggregator.summarize(self.store.entries, location)
        if generation == self.store.generation and location == self.store.user_location:
            self.distance_summary = summary

    # --- Map type ---
    def set_map_type(self, kind: str) -> None:
        if kind not in MAP_TYPES:
            raise ValueError(f"Unknown map type: {kind}")
        map_surface = self._require_map()
        if kind == '3d':
            map_surface.set_map_type('satellite')
            map_surface.set_tilt(TILT_3D)
            map_surface.set_zoom(max(map_surface.get_zoom() or DEFAULT_ZOOM, FOCUS_ZOOM))
        else:
            map_surface.set_map_type(kind)
            map_surface.set_tilt(0)
        self.map_type = kind
        if self.storage is not None:
            self.storage.set(MAP_TYPE_KEY, kind)

    def restore_map_type(self) -> Optional[str]:
        if self.storage is None:
            return None
        stored = self.storage.get(MAP_TYPE_KEY)
        if stored in MAP_TYPES:
            self.set_map_type(stored)
            return stored
        return None

    # --- Result set replacement ---
    def _replace_results(self, entries: Sequence[ResultEntry], ranked: bool) -> None:
        # Tear down everything tied to the previous set before building the next
        self._cancel_background()
        self.resolver.invalidate()
        self.markers.clear()
        self.selection = SelectionState.none()

        self.store.set_results(entries)
        if ranked:
            self.markers.render_ranked(self.store.entries, self.store.user_location)
        else:
            self.store.set_viewport(self.map_surface.get_bounds())
            self.markers.replace(self.store.visible)
        self._schedule_summary()

    # --- Background tasks ---
    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task failed: %r", exc, exc_info=exc)

    def _cancel_background(self) -> None:
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()

    async def drain(self) -> None:
        """Wait for outstanding backfills, selections and summaries."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _list_row(self, entry: ResultEntry) -> Dict[str, Any]:
        row = entry.to_dict()
        row.update({
            'travel_hint': self.travel_hint(entry),
            'price': price_level_label(entry.price_level),
            'cuisine': cuisine_label(entry.category_tags),
        })
        return row

    def snapshot(self) -> Dict[str, Any]:
        return {
            'visible_results': [self._list_row(e) for e in self.visible_results],
            'result_count': len(self.store),
            'ranked': bool(self.markers and self.markers.ranked),
            'live_markers': sorted(self.markers.live_ids) if self.markers else [],
            'selection': self.selection.to_dict(),
            'distance_summary': self.distance_summary.to_dict() if self.distance_summary else None,
            'user_location': self.store.user_location.to_dict() if self.store.user_location else None,
            'map_type': self.map_type,
            'loading': self.is_loading,
        }
