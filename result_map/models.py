"""Data model for the result map engine: coordinates, results, markers, selection."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple


METERS_TO_MILES = 0.000621371


# --- Coordinates ---

@dataclass(frozen=True)
class LatLng:
    lat: float
    lng: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.lat, self.lng)

    def to_dict(self) -> Dict[str, float]:
        return {'lat': self.lat, 'lng': self.lng}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LatLng':
        return cls(float(data['lat']), float(data['lng']))


def _eastward_span(west: float, east: float) -> float:
    """Degrees of longitude travelled going east from `west` to `east`."""
    return (east - west) % 360.0


@dataclass(frozen=True)
class Bounds:
    """Visible map rectangle. When west > east the box crosses the antimeridian."""
    south: float
    west: float
    north: float
    east: float

    def contains(self, point: Optional[LatLng]) -> bool:
        if point is None:
            return False
        if not (self.south <= point.lat <= self.north):
            return False
        return self._contains_lng(point.lng)

    def _contains_lng(self, lng: float) -> bool:
        if self.west <= self.east:
            return self.west <= lng <= self.east
        return lng >= self.west or lng <= self.east

    def extend(self, point: LatLng) -> 'Bounds':
        """Grow to cover `point`, wrapping across the antimeridian when that is the shorter way."""
        west, east = self.west, self.east
        if not self._contains_lng(point.lng):
            if _eastward_span(point.lng, east) < _eastward_span(west, point.lng):
                west = point.lng
            else:
                east = point.lng
        return Bounds(
            south=min(self.south, point.lat),
            west=west,
            north=max(self.north, point.lat),
            east=east,
        )

    @property
    def center(self) -> LatLng:
        lat = (self.south + self.north) / 2
        if self.west <= self.east:
            return LatLng(lat, (self.west + self.east) / 2)
        lng = self.west + _eastward_span(self.west, self.east) / 2
        return LatLng(lat, (lng + 180.0) % 360.0 - 180.0)

    @classmethod
    def from_points(cls, points: Iterable[LatLng]) -> Optional['Bounds']:
        bounds = None
        for p in points:
            if bounds is None:
                bounds = cls(p.lat, p.lng, p.lat, p.lng)
            else:
                bounds = bounds.extend(p)
        return bounds

    def to_dict(self) -> Dict[str, float]:
        return {'south': self.south, 'west': self.west, 'north': self.north, 'east': self.east}


# --- Results ---

@dataclass(frozen=True)
class Review:
    author: str
    rating: Optional[float] = None
    text: str = ''
    relative_time: Optional[str] = None


@dataclass(frozen=True)
class ResultEntry:
    """A search hit as returned by a provider query. Identity is `id`."""
    id: str
    name: str
    address: str = ''
    coordinates: Optional[LatLng] = None
    rating: Optional[float] = None
    price_level: Optional[int] = None
    category_tags: Tuple[str, ...] = ()  # provider order
    photo_refs: Tuple[str, ...] = ()
    hours_summary: Optional[str] = None
    rank: Optional[int] = None
    match_score: Optional[float] = None

    @property
    def has_coordinates(self) -> bool:
        return self.coordinates is not None

    def merge(self, newer: 'ResultEntry') -> 'ResultEntry':
        """Fold later data for the same place into this entry."""
        if newer.id != self.id:
            raise ValueError(f"Cannot merge entries with different ids: {self.id} != {newer.id}")
        return replace(
            self,
            name=newer.name or self.name,
            address=newer.address or self.address,
            coordinates=newer.coordinates or self.coordinates,
            rating=newer.rating if newer.rating is not None else self.rating,
            price_level=newer.price_level if newer.price_level is not None else self.price_level,
            category_tags=self.category_tags + tuple(t for t in newer.category_tags if t not in self.category_tags),
            photo_refs=newer.photo_refs or self.photo_refs,
            hours_summary=newer.hours_summary or self.hours_summary,
            rank=newer.rank if newer.rank is not None else self.rank,
            match_score=newer.match_score if newer.match_score is not None else self.match_score,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'address': self.address,
            'lat': self.coordinates.lat if self.coordinates else None,
            'lng': self.coordinates.lng if self.coordinates else None,
            'rating': self.rating,
            'price_level': self.price_level,
            'types': list(self.category_tags),
            'photos': list(self.photo_refs),
            'hours_summary': self.hours_summary,
            'rank': self.rank,
            'match_score': self.match_score,
        }

    @classmethod
    def from_handoff(cls, data: Dict[str, Any], rank: Optional[int] = None) -> 'ResultEntry':
        """Build an entry from an externally handed-off payload (place_id, name, latitude, ...)."""
        lat = data.get('latitude', data.get('lat'))
        lng = data.get('longitude', data.get('lng'))
        coordinates = LatLng(float(lat), float(lng)) if lat is not None and lng is not None else None
        return cls(
            id=str(data.get('place_id') or data['id']),
            name=data.get('name', ''),
            address=data.get('address', '') or '',
            coordinates=coordinates,
            rating=data.get('rating'),
            rank=rank,
            match_score=data.get('match_score'),
        )


@dataclass(frozen=True)
class DetailedResult(ResultEntry):
    """ResultEntry augmented with an on-demand detail fetch."""
    phone: Optional[str] = None
    website: Optional[str] = None
    external_url: Optional[str] = None
    reviews: Tuple[Review, ...] = ()
    weekday_hours: Tuple[str, ...] = ()
    serves_breakfast: Optional[bool] = None
    serves_lunch: Optional[bool] = None
    serves_dinner: Optional[bool] = None
    serves_brunch: Optional[bool] = None
    serves_vegetarian_food: Optional[bool] = None
    editorial_summary: Optional[str] = None
    user_ratings_total: Optional[int] = None
    degraded: bool = False

    def as_entry(self) -> ResultEntry:
        return ResultEntry(
            id=self.id,
            name=self.name,
            address=self.address,
            coordinates=self.coordinates,
            rating=self.rating,
            price_level=self.price_level,
            category_tags=self.category_tags,
            photo_refs=self.photo_refs,
            hours_summary=self.hours_summary,
            rank=self.rank,
            match_score=self.match_score,
        )

    @classmethod
    def from_entry(cls, entry: ResultEntry, degraded: bool = True) -> 'DetailedResult':
        return cls(
            id=entry.id,
            name=entry.name,
            address=entry.address,
            coordinates=entry.coordinates,
            rating=entry.rating,
            price_level=entry.price_level,
            category_tags=entry.category_tags,
            photo_refs=entry.photo_refs,
            hours_summary=entry.hours_summary,
            rank=entry.rank,
            match_score=entry.match_score,
            degraded=degraded,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            'phone': self.phone,
            'website': self.website,
            'url': self.external_url,
            'reviews': [
                {'author': r.author, 'rating': r.rating, 'text': r.text, 'relative_time': r.relative_time}
                for r in self.reviews
            ],
            'weekday_hours': list(self.weekday_hours),
            'serves_breakfast': self.serves_breakfast,
            'serves_lunch': self.serves_lunch,
            'serves_dinner': self.serves_dinner,
            'serves_brunch': self.serves_brunch,
            'serves_vegetarian_food': self.serves_vegetarian_food,
            'editorial_summary': self.editorial_summary,
            'user_ratings_total': self.user_ratings_total,
            'degraded': self.degraded,
        })
        return data


# --- Markers ---

@dataclass(frozen=True)
class MarkerStyle:
    fill_color: str
    scale: int
    stroke_color: str = '#ffffff'
    stroke_weight: int = 2
    fill_opacity: float = 1.0
    label_text: Optional[str] = None
    animation: Optional[str] = None
    z_index: Optional[int] = None


@dataclass
class MarkerHandle:
    """Ownership token for one rendered marker and its optional label overlay."""
    entry_id: str
    marker: Any
    label: Any = None


# --- Selection ---

class SelectionKind(Enum):
    NONE = 'none'
    RESOLVING = 'resolving'
    RESOLVED = 'resolved'


@dataclass(frozen=True)
class SelectionState:
    kind: SelectionKind
    entry_id: Optional[str] = None
    entry: Optional[ResultEntry] = None
    detail: Optional[DetailedResult] = None

    @classmethod
    def none(cls) -> 'SelectionState':
        return cls(SelectionKind.NONE)

    @classmethod
    def resolving(cls, entry: ResultEntry) -> 'SelectionState':
        return cls(SelectionKind.RESOLVING, entry_id=entry.id, entry=entry)

    @classmethod
    def resolved(cls, detail: DetailedResult) -> 'SelectionState':
        return cls(SelectionKind.RESOLVED, entry_id=detail.id, entry=detail.as_entry(), detail=detail)

    @property
    def is_loading(self) -> bool:
        return self.kind is SelectionKind.RESOLVING

    def to_dict(self) -> Dict[str, Any]:
        return {
            'state': self.kind.value,
            'id': self.entry_id,
            'loading': self.is_loading,
            'entry': self.entry.to_dict() if self.entry else None,
            'detail': self.detail.to_dict() if self.detail else None,
        }


# --- Distances ---

class TravelMode(Enum):
    WALKING = 'walking'
    DRIVING = 'driving'


@dataclass(frozen=True)
class DistanceLeg:
    status: str
    distance_meters: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status == 'OK' and self.distance_meters is not None


@dataclass(frozen=True)
class DistanceSummary:
    walking_average_m: Optional[float] = None
    driving_average_m: Optional[float] = None

    @staticmethod
    def _miles_label(meters: Optional[float]) -> Optional[str]:
        if meters is None:
            return None
        return f"{meters * METERS_TO_MILES:.1f} mi"

    @property
    def walking(self) -> Optional[str]:
        return self._miles_label(self.walking_average_m)

    @property
    def driving(self) -> Optional[str]:
        return self._miles_label(self.driving_average_m)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'walking': self.walking,
            'driving': self.driving,
            'walking_average_meters': self.walking_average_m,
            'driving_average_meters': self.driving_average_m,
        }
