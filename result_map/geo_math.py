"""Pure distance and travel-time helpers."""

from typing import Iterable, Optional

from geopy.distance import great_circle

from .models import LatLng


WALKING_SPEED_MPH = 3.0
DRIVING_SPEED_MPH = 20.0
WALKING_CUTOFF_MILES = 0.5

CUISINE_LABELS = {
    'italian_restaurant': 'Italian',
    'japanese_restaurant': 'Japanese',
    'chinese_restaurant': 'Chinese',
    'mexican_restaurant': 'Mexican',
    'indian_restaurant': 'Indian',
    'thai_restaurant': 'Thai',
    'french_restaurant': 'French',
    'american_restaurant': 'American',
    'korean_restaurant': 'Korean',
    'cafe': 'Café',
    'bakery': 'Bakery',
    'bar': 'Bar',
    'pizza_restaurant': 'Pizza',
}


def distance_miles(a: LatLng, b: LatLng) -> float:
    """Great-circle distance in miles"""
    return great_circle(a.as_tuple(), b.as_tuple()).miles


def estimate_travel_time(miles: float) -> str:
    """
    Rough list-row estimate: short hops are walked at 3 mph,
    anything from half a mile on is driven at 20 mph.
    """
    if miles < WALKING_CUTOFF_MILES:
        return f"{round(miles / WALKING_SPEED_MPH * 60)} min walk"
    return f"{round(miles / DRIVING_SPEED_MPH * 60)} min drive"


def average(values: Iterable[float]) -> Optional[float]:
    values = list(values)
    if not values:
        return None
    return sum(values) / len(values)


def price_level_label(level: Optional[int]) -> str:
    return '$' * level if level else ''


def cuisine_label(tags: Optional[Iterable[str]]) -> str:
    # first recognised tag in provider order wins
    if not tags:
        return 'Restaurant'
    for tag in tags:
        if tag in CUISINE_LABELS:
            return CUISINE_LABELS[tag]
    return 'Restaurant'
