import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from .capabilities import MapSurface, MarkerFactory
from .models import LatLng, MarkerHandle, MarkerStyle, ResultEntry


logger = logging.getLogger(__name__)

# --- Styling ---
HIGHLIGHT_RATING = 4.5
HIGHLIGHT_FILL = '#9B87F5'
DEFAULT_FILL = '#60A5FA'
RANKED_FILL = '#7C3AED'
USER_LOCATION_FILL = '#4285F4'
LABEL_BUDGET = 15
FIT_PADDING = 50

USER_LOCATION_STYLE = MarkerStyle(
    fill_color=USER_LOCATION_FILL, scale=10, stroke_weight=3, z_index=1000
)
PULSE_STYLE = MarkerStyle(
    fill_color=USER_LOCATION_FILL, scale=0, stroke_color=USER_LOCATION_FILL,
    stroke_weight=1, fill_opacity=0.2,
)


def marker_style_for(entry: ResultEntry) -> MarkerStyle:
    """Color-only styling for live search markers, keyed on rating."""
    highlighted = entry.rating is not None and entry.rating >= HIGHLIGHT_RATING
    return MarkerStyle(
        fill_color=HIGHLIGHT_FILL if highlighted else DEFAULT_FILL,
        scale=6,
        stroke_weight=2,
    )


def ranked_style_for(rank: int) -> MarkerStyle:
    return MarkerStyle(
        fill_color=RANKED_FILL,
        scale=18,
        stroke_weight=3,
        label_text=str(rank),
        animation='drop',
    )


def truncate_label(name: str, budget: int = LABEL_BUDGET) -> str:
    if len(name) > budget:
        return name[:budget] + '...'
    return name


class MarkerLifecycleManager:
    """
    Owns the on-map markers and keeps them equal, by id, to the entries it is
    handed. Holds no business state beyond the id -> handle mapping.
    """

    def __init__(
        self,
        map_surface: MapSurface,
        marker_factory: MarkerFactory,
        on_select: Callable[[ResultEntry], Any],
        label_budget: int = LABEL_BUDGET,
    ):
        self.map_surface = map_surface
        self.marker_factory = marker_factory
        self.on_select = on_select
        self.label_budget = label_budget
        self.ranked = False
        self._handles: Dict[str, MarkerHandle] = {}
        self._positions: Dict[str, LatLng] = {}

    @property
    def live_ids(self) -> Set[str]:
        return set(self._handles)

    def __len__(self) -> int:
        return len(self._handles)

    def sync(self, visible_entries: Iterable[ResultEntry]) -> Tuple[int, int]:
        """
        Reconcile live markers against `visible_entries`: destroy stale handles,
        create missing ones. Returns (created, destroyed).
        """
        wanted: Dict[str, ResultEntry] = {}
        for entry in visible_entries:
            if entry.coordinates is not None:
                wanted.setdefault(entry.id, entry)

        destroyed = 0
        for entry_id in [i for i in self._handles if i not in wanted]:
            self._destroy(entry_id)
            destroyed += 1

        created = 0
        for entry in wanted.values():
            if entry.id not in self._handles and self._create(entry):
                created += 1

        logger.debug("Marker sync: %d created, %d destroyed, %d live", created, destroyed, len(self._handles))
        return created, destroyed

    def replace(self, visible_entries: Iterable[ResultEntry]) -> None:
        """Tear down every live marker, then render the new set."""
        self.clear()
        self.ranked = False
        self.sync(visible_entries)

    def render_ranked(self, entries: Iterable[ResultEntry], user_location: Optional[LatLng] = None) -> None:
        """Show a ranked set in full, labeled by rank, and fit the map around it."""
        self.clear()
        self.ranked = True
        for position, entry in enumerate(entries, start=1):
            if entry.coordinates is None or entry.id in self._handles:
                continue
            self._create(entry, rank=entry.rank or position)
        self.fit(user_location)

    def add_ranked(self, entry: ResultEntry, user_location: Optional[LatLng] = None) -> bool:
        """Render one late-arriving member of a ranked set."""
        if entry.coordinates is None or entry.id in self._handles:
            return False
        created = self._create(entry, rank=entry.rank or len(self._handles) + 1)
        if created:
            self.fit(user_location)
        return created

    def fit(self, user_location: Optional[LatLng] = None) -> None:
        points: List[LatLng] = list(self._positions.values())
        if user_location is not None:
            points.append(user_location)
        if points:
            self.map_surface.fit_to_bounds(points, FIT_PADDING)

    def clear(self) -> None:
        for entry_id in list(self._handles):
            self._destroy(entry_id)

    # --- Internals ---
    def _create(self, entry: ResultEntry, rank: Optional[int] = None) -> bool:
        marker = None
        try:
            if rank is not None:
                style = ranked_style_for(rank)
                marker = self.marker_factory.create_marker(
                    entry.coordinates, style, label=style.label_text,
                    on_click=lambda entry=entry: self.on_select(entry), title=entry.name,
                )
                label = None
            else:
                marker = self.marker_factory.create_marker(
                    entry.coordinates, marker_style_for(entry),
                    on_click=lambda entry=entry: self.on_select(entry), title=entry.name,
                )
                label = self.marker_factory.create_label(marker, truncate_label(entry.name, self.label_budget))
        except Exception as e:
            logger.warning("Skipping marker for %s (%s): %s", entry.id, entry.name, e)
            if marker is not None:
                self.marker_factory.destroy(marker)
            return False

        self._handles[entry.id] = MarkerHandle(entry_id=entry.id, marker=marker, label=label)
        self._positions[entry.id] = entry.coordinates
        return True

    def _destroy(self, entry_id: str) -> None:
        handle = self._handles.pop(entry_id)
        self._positions.pop(entry_id, None)
        if handle.label is not None:
            self.marker_factory.destroy(handle.label)
        self.marker_factory.destroy(handle.marker)


class LocationPulse:
    """
    User-location dot with a pulsing circle. The animation task lives between
    start() and stop(); the owning session stops it on close.
    """

    MIN_RADIUS = 50
    MAX_RADIUS = 100
    STEP = 3

    def __init__(self, marker_factory: MarkerFactory, interval: float = 0.05):
        self.marker_factory = marker_factory
        self.interval = interval
        self.radius = self.MIN_RADIUS
        self.location: Optional[LatLng] = None
        self._marker = None
        self._circle = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @classmethod
    def next_radius(cls, radius: float, growing: bool) -> Tuple[float, bool]:
        if growing:
            radius += cls.STEP
            if radius >= cls.MAX_RADIUS:
                growing = False
        else:
            radius -= cls.STEP
            if radius <= cls.MIN_RADIUS:
                growing = True
        return radius, growing

    def start(self, location: LatLng) -> None:
        """Must be called from inside the running event loop."""
        self.stop()
        self.location = location
        self.radius = self.MIN_RADIUS
        self._marker = self.marker_factory.create_marker(location, USER_LOCATION_STYLE, title='Your Location')
        self._circle = self.marker_factory.create_circle(location, self.radius, PULSE_STYLE)
        self._task = asyncio.get_running_loop().create_task(self._animate())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        if self._circle is not None:
            self.marker_factory.destroy(self._circle)
            self._circle = None
        if self._marker is not None:
            self.marker_factory.destroy(self._marker)
            self._marker = None

    async def _animate(self) -> None:
        growing = True
        circle = self._circle
        while True:
            await asyncio.sleep(self.interval)
            self.radius, growing = self.next_radius(self.radius, growing)
            self.marker_factory.set_circle_radius(circle, self.radius)
