import googlemaps
from googlemaps import exceptions as gm_exceptions
from googlemaps.places import PLACES_DETAIL_FIELDS
from typing import Dict, List, Optional, Sequence
import asyncio
import concurrent.futures
import logging

from .errors import NotFound, PartialData, ProviderUnavailable
from .models import DetailedResult, DistanceLeg, LatLng, ResultEntry, Review, TravelMode


logger = logging.getLogger(__name__)

# --- Module-level constants ---
DISTANCE_MATRIX_MAX_DEST = 25   # conservative chunk size for DM requests
NOT_FOUND_STATUSES = {'NOT_FOUND', 'ZERO_RESULTS', 'INVALID_REQUEST'}
PHOTO_URL = "https://maps.googleapis.com/maps/api/place/photo"


def _fmt(pt: LatLng) -> str:
    return f"{pt.lat},{pt.lng}"


def _translate_error(e: Exception, what: str, entry_id: Optional[str] = None) -> Exception:
    """Map googlemaps client exceptions onto the engine taxonomy"""
    if isinstance(e, gm_exceptions.ApiError) and e.status in NOT_FOUND_STATUSES:
        return NotFound(f"{what}: {e.status}", entry_id=entry_id)
    return ProviderUnavailable(f"{what} failed: {e}", entry_id=entry_id)


def _location_of(place: Dict) -> Optional[LatLng]:
    loc = place.get('geometry', {}).get('location')
    if not loc or loc.get('lat') is None or loc.get('lng') is None:
        return None
    return LatLng(float(loc['lat']), float(loc['lng']))


def _hours_summary(place: Dict) -> Optional[str]:
    open_now = place.get('opening_hours', {}).get('open_now')
    if open_now is None:
        return None
    return 'Open now' if open_now else 'Closed'


def parse_place(place: Dict) -> ResultEntry:
    """Convert a Places search hit into a ResultEntry"""
    return ResultEntry(
        id=place['place_id'],
        name=place.get('name', ''),
        address=place.get('formatted_address') or place.get('vicinity', ''),
        coordinates=_location_of(place),
        rating=place.get('rating'),
        price_level=place.get('price_level'),
        category_tags=tuple(dict.fromkeys(place.get('types', []))),
        photo_refs=tuple(p['photo_reference'] for p in place.get('photos', []) if p.get('photo_reference')),
        hours_summary=_hours_summary(place),
    )


def parse_place_details(place_id: str, place: Dict) -> DetailedResult:
    """Convert a Place Details result into a DetailedResult"""
    base = parse_place(dict(place, place_id=place.get('place_id', place_id)))
    reviews = tuple(
        Review(
            author=r.get('author_name', ''),
            rating=r.get('rating'),
            text=r.get('text', ''),
            relative_time=r.get('relative_time_description'),
        )
        for r in place.get('reviews', [])
    )
    return DetailedResult(
        id=base.id,
        name=base.name,
        address=base.address,
        coordinates=base.coordinates,
        rating=base.rating,
        price_level=base.price_level,
        category_tags=base.category_tags,
        photo_refs=base.photo_refs,
        hours_summary=base.hours_summary,
        phone=place.get('formatted_phone_number'),
        website=place.get('website'),
        external_url=place.get('url'),
        reviews=reviews,
        weekday_hours=tuple(place.get('opening_hours', {}).get('weekday_text', [])),
        serves_breakfast=place.get('serves_breakfast'),
        serves_lunch=place.get('serves_lunch'),
        serves_dinner=place.get('serves_dinner'),
        serves_brunch=place.get('serves_brunch'),
        serves_vegetarian_food=place.get('serves_vegetarian_food'),
        editorial_summary=place.get('editorial_summary', {}).get('overview'),
        user_ratings_total=place.get('user_ratings_total'),
    )


class GoogleMapsService:
    """Google Maps binding for place search, place details, geocoding and distances"""

    def __init__(self, api_key: str, client: Optional[googlemaps.Client] = None):
        if not api_key or api_key == "your_api_key_here":
            raise ValueError("Valid Google Maps API key is required")
        self.api_key = api_key
        self.client = client or googlemaps.Client(key=api_key)
        self.executor = concurrent.futures.ThreadPoolExecutor(max_workers=10)

    def cleanup(self):
        """Clean up resources"""
        if hasattr(self, 'executor'):
            self.executor.shutdown(wait=True)

    def text_search(self, query: str, anchor: LatLng, radius: int) -> List[ResultEntry]:
        """Places text search biased to `radius` meters around `anchor`"""
        try:
            response = self.client.places(query=query, location=anchor.as_tuple(), radius=radius)
        except (gm_exceptions.ApiError, gm_exceptions.TransportError, gm_exceptions.Timeout) as e:
            raise _translate_error(e, f"Text search for {query!r}")
        results = []
        for place in response.get('results', []):
            if not place.get('place_id'):
                continue
            results.append(parse_place(place))
        logger.debug("Text search %r -> %d results", query, len(results))
        return results

    def place_details(self, place_id: str, fields: Sequence[str]) -> DetailedResult:
        """Fetch the requested detail fields for one place"""
        supported = [f for f in fields if f in PLACES_DETAIL_FIELDS]
        dropped = set(fields) - set(supported)
        if dropped:
            logger.debug("Skipping unsupported detail fields: %s", sorted(dropped))
        try:
            response = self.client.place(place_id, fields=supported or None)
        except (gm_exceptions.ApiError, gm_exceptions.TransportError, gm_exceptions.Timeout) as e:
            raise _translate_error(e, f"Place details for {place_id}", entry_id=place_id)
        place = response.get('result')
        if not place:
            raise NotFound(f"No details for {place_id}", entry_id=place_id)
        return parse_place_details(place_id, place)

    def geocode_address(self, address: str) -> LatLng:
        """
        Geocode an address using Google Maps Geocoding API
        Returns coordinates of the first match
        """
        try:
            result = self.client.geocode(address)
        except (gm_exceptions.ApiError, gm_exceptions.TransportError, gm_exceptions.Timeout) as e:
            raise _translate_error(e, f"Geocoding {address!r}")
        if not result:
            raise NotFound(f"Could not geocode address: {address}")
        location = result[0]['geometry']['location']
        return LatLng(location['lat'], location['lng'])

    def distance_matrix(self, origin: LatLng, destinations: Sequence[LatLng], mode: TravelMode) -> List[DistanceLeg]:
        """One origin to many destinations, one leg per destination.
        Chunks destinations to respect API limits.
        """
        legs: List[DistanceLeg] = []
        for start in range(0, len(destinations), DISTANCE_MATRIX_MAX_DEST):
            chunk = destinations[start:start + DISTANCE_MATRIX_MAX_DEST]
            try:
                dm = self.client.distance_matrix(
                    origins=[_fmt(origin)],
                    destinations=[_fmt(d) for d in chunk],
                    mode=mode.value,
                )
            except (gm_exceptions.ApiError, gm_exceptions.TransportError, gm_exceptions.Timeout) as e:
                if not legs:
                    raise _translate_error(e, f"{mode.value} distance matrix")
                legs.extend(DistanceLeg('UNKNOWN_ERROR') for _ in destinations[start:])
                raise PartialData(f"{mode.value} distance matrix failed after {start} destinations: {e}", partial=legs)

            rows = dm.get('rows', [])
            elements = rows[0].get('elements', []) if rows else []
            for j in range(len(chunk)):
                el = elements[j] if j < len(elements) else {}
                status = el.get('status', 'UNKNOWN_ERROR')
                meters = el.get('distance', {}).get('value')
                legs.append(DistanceLeg(status, meters if status == 'OK' else None))
        return legs

    def photo_url(self, photo_ref: str, max_width: int = 600, max_height: Optional[int] = None) -> str:
        url = f"{PHOTO_URL}?maxwidth={max_width}&photo_reference={photo_ref}&key={self.api_key}"
        if max_height:
            url += f"&maxheight={max_height}"
        return url

    # Async wrappers for use from the engine's event loop
    async def text_search_async(self, query: str, anchor: LatLng, radius: int) -> List[ResultEntry]:
        """Async wrapper for text_search"""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(self.executor, self.text_search, query, anchor, radius)

    async def place_details_async(self, place_id: str, fields: Sequence[str]) -> DetailedResult:
        """Async wrapper for place_details"""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(self.executor, self.place_details, place_id, fields)

    async def geocode_address_async(self, address: str) -> LatLng:
        """Async wrapper for geocode_address"""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(self.executor, self.geocode_address, address)

    async def distance_matrix_async(self, origin: LatLng, destinations: Sequence[LatLng], mode: TravelMode) -> List[DistanceLeg]:
        """Async wrapper for distance_matrix"""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(self.executor, self.distance_matrix, origin, destinations, mode)
