"""
Capability interfaces the engine consumes.

Provider bindings (see maps_service.GoogleMapsService) and host surfaces
(see surface.SessionMapSurface) implement these structurally.
"""

from typing import Any, Callable, List, Optional, Protocol, Sequence

from .models import Bounds, DetailedResult, DistanceLeg, LatLng, MarkerStyle, ResultEntry, TravelMode


class MapSurface(Protocol):
    """The interactive map the markers live on."""

    def set_center(self, center: LatLng) -> None:
        ...

    def set_zoom(self, zoom: float) -> None:
        ...

    def get_zoom(self) -> float:
        ...

    def set_tilt(self, tilt: float) -> None:
        ...

    def set_map_type(self, map_type: str) -> None:
        ...

    def fit_to_bounds(self, points: Sequence[LatLng], padding: int) -> None:
        ...

    def add_listener(self, event: str, handler: Callable[..., Any]) -> Any:
        ...

    def remove_listener(self, token: Any) -> None:
        ...

    def get_bounds(self) -> Optional[Bounds]:
        """Currently visible bounds, or None before the first layout."""
        ...


class PlaceSearchService(Protocol):

    async def text_search_async(self, query: str, anchor: LatLng, radius: int) -> List[ResultEntry]:
        ...

    async def place_details_async(self, entry_id: str, fields: Sequence[str]) -> DetailedResult:
        """Raises NotFound when the provider has no such place."""
        ...


class GeocodingService(Protocol):

    async def geocode_address_async(self, address: str) -> LatLng:
        """Raises NotFound when the address cannot be resolved."""
        ...


class DistanceService(Protocol):

    async def distance_matrix_async(
        self, origin: LatLng, destinations: Sequence[LatLng], mode: TravelMode
    ) -> List[DistanceLeg]:
        """One leg per destination, in destination order."""
        ...


class MarkerFactory(Protocol):

    def create_marker(
        self,
        position: LatLng,
        style: MarkerStyle,
        label: Optional[str] = None,
        on_click: Optional[Callable[[], Any]] = None,
        title: Optional[str] = None,
    ) -> Any:
        """Returns an opaque marker reference. Raises ValueError for unusable positions."""
        ...

    def create_label(self, marker: Any, text: str) -> Any:
        ...

    def create_circle(self, center: LatLng, radius: float, style: MarkerStyle) -> Any:
        ...

    def set_circle_radius(self, circle: Any, radius: float) -> None:
        ...

    def destroy(self, item: Any) -> None:
        """Remove a marker, label or circle from the map and detach its listeners."""
        ...


class KeyValueStore(Protocol):
    """External get/set/delete storage for preferences and handoff payloads."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...
