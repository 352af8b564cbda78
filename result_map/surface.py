"""
Server-side map surface and marker factory.

The browser owns the real map widget; the host keeps the authoritative marker
and viewport state here and serves it to the frontend as JSON.
"""

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from .models import Bounds, LatLng, MarkerStyle


logger = logging.getLogger(__name__)


@dataclass
class RenderedItem:
    id: int
    kind: str  # marker | label | circle
    position: LatLng
    style: Optional[MarkerStyle] = None
    text: Optional[str] = None
    title: Optional[str] = None
    radius: Optional[float] = None
    parent: Optional[int] = None
    on_click: Optional[Callable[[], Any]] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'kind': self.kind,
            'lat': self.position.lat,
            'lng': self.position.lng,
            'text': self.text,
            'title': self.title,
        }
        if self.style is not None:
            data.update({
                'fill_color': self.style.fill_color,
                'fill_opacity': self.style.fill_opacity,
                'scale': self.style.scale,
                'stroke_color': self.style.stroke_color,
                'stroke_weight': self.style.stroke_weight,
                'animation': self.style.animation,
                'z_index': self.style.z_index,
            })
        if self.radius is not None:
            data['radius'] = self.radius
        if self.parent is not None:
            data['parent'] = self.parent
        return data


class RecordingMarkerFactory:
    """Keeps rendered markers, labels and circles in memory for the frontend to draw"""

    def __init__(self):
        self._ids = itertools.count(1)
        self.items: Dict[int, RenderedItem] = {}
        self.events: List[tuple] = []

    def create_marker(self, position, style, label=None, on_click=None, title=None) -> RenderedItem:
        if position is None:
            raise ValueError("Marker position is required")
        if not (-90.0 <= position.lat <= 90.0 and -180.0 <= position.lng <= 180.0):
            raise ValueError(f"Invalid marker position: {position.lat},{position.lng}")
        item = RenderedItem(next(self._ids), 'marker', position, style=style, text=label, title=title, on_click=on_click)
        return self._add(item)

    def create_label(self, marker: RenderedItem, text: str) -> RenderedItem:
        return self._add(RenderedItem(next(self._ids), 'label', marker.position, text=text, parent=marker.id))

    def create_circle(self, center: LatLng, radius: float, style: MarkerStyle) -> RenderedItem:
        return self._add(RenderedItem(next(self._ids), 'circle', center, style=style, radius=radius))

    def set_circle_radius(self, circle: RenderedItem, radius: float) -> None:
        circle.radius = radius

    def destroy(self, item: RenderedItem) -> None:
        if self.items.pop(item.id, None) is not None:
            item.on_click = None
            self.events.append(('destroy', item.kind, item.id))

    def click(self, item_id: int) -> bool:
        item = self.items.get(item_id)
        if item is None or item.on_click is None:
            return False
        item.on_click()
        return True

    def of_kind(self, kind: str) -> List[RenderedItem]:
        return [i for i in self.items.values() if i.kind == kind]

    def _add(self, item: RenderedItem) -> RenderedItem:
        self.items[item.id] = item
        self.events.append(('create', item.kind, item.id))
        return item

    def to_list(self) -> List[Dict[str, Any]]:
        return [i.to_dict() for i in self.items.values()]


class SessionMapSurface:
    """Viewport state mirrored from the frontend map"""

    def __init__(self, center: Optional[LatLng] = None, zoom: float = 15):
        self.center = center
        self.zoom = zoom
        self.tilt = 0.0
        self.map_type = 'roadmap'
        self.bounds: Optional[Bounds] = None
        self.fit_padding: Optional[int] = None
        self._listeners: Dict[int, tuple] = {}
        self._tokens = itertools.count(1)

    def set_center(self, center: LatLng) -> None:
        if self.bounds is not None and self.center is not None:
            dlat = center.lat - self.center.lat
            dlng = center.lng - self.center.lng
            b = self.bounds
            self.bounds = Bounds(b.south + dlat, b.west + dlng, b.north + dlat, b.east + dlng)
        self.center = center

    def set_zoom(self, zoom: float) -> None:
        self.zoom = zoom

    def get_zoom(self) -> float:
        return self.zoom

    def set_tilt(self, tilt: float) -> None:
        self.tilt = tilt

    def set_map_type(self, map_type: str) -> None:
        self.map_type = map_type

    def fit_to_bounds(self, points: Sequence[LatLng], padding: int) -> None:
        bounds = Bounds.from_points(points)
        if bounds is None:
            return
        self.bounds = bounds
        self.center = bounds.center
        self.fit_padding = padding

    def get_bounds(self) -> Optional[Bounds]:
        return self.bounds

    def add_listener(self, event: str, handler: Callable[..., Any]) -> int:
        token = next(self._tokens)
        self._listeners[token] = (event, handler)
        return token

    def remove_listener(self, token: int) -> None:
        self._listeners.pop(token, None)

    def update_viewport(self, bounds: Bounds, zoom: Optional[float] = None) -> None:
        """Record bounds reported by the frontend and fire 'idle'"""
        self.bounds = bounds
        self.center = bounds.center
        if zoom is not None:
            self.zoom = zoom
        self.emit('idle', bounds)

    def emit(self, event: str, *args) -> None:
        for name, handler in list(self._listeners.values()):
            if name == event:
                handler(*args)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'center': self.center.to_dict() if self.center else None,
            'zoom': self.zoom,
            'tilt': self.tilt,
            'map_type': self.map_type,
            'bounds': self.bounds.to_dict() if self.bounds else None,
        }


class MemoryStore:
    """In-process key-value storage"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)
