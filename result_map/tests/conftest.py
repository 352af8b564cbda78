"""Shared fixtures for the result map test suite.

Provider fakes live in fakes.py; the map surface and marker factory are the
real in-memory implementations from result_map.surface.
"""

import pytest

from fakes import FakeDistanceService, FakeGeocoder, FakePlaceService
from result_map.search_session import SearchSessionController
from result_map.surface import MemoryStore, RecordingMarkerFactory, SessionMapSurface


@pytest.fixture
def place_service():
    return FakePlaceService()


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def distance_service():
    return FakeDistanceService()


@pytest.fixture
def surface():
    return SessionMapSurface()


@pytest.fixture
def marker_factory():
    return RecordingMarkerFactory()


@pytest.fixture
def storage():
    return MemoryStore()


@pytest.fixture
def session(place_service, geocoder, distance_service, marker_factory, storage, surface):
    controller = SearchSessionController(
        place_service, geocoder, distance_service, marker_factory, storage, pulse_interval=0.01,
    )
    controller.attach_map(surface)
    return controller
