"""Tests for the data model: bounds, merging, handoff parsing, summaries."""

import pytest

from fakes import entry
from result_map.models import (
    Bounds,
    DetailedResult,
    DistanceLeg,
    DistanceSummary,
    LatLng,
    ResultEntry,
    SelectionKind,
    SelectionState,
)


class TestBounds:

    def test_contains_inside_and_outside(self):
        bounds = Bounds(south=42.0, west=-72.0, north=43.0, east=-71.0)
        assert bounds.contains(LatLng(42.5, -71.5))
        assert not bounds.contains(LatLng(43.5, -71.5))
        assert not bounds.contains(LatLng(42.5, -70.5))

    def test_edges_are_inclusive(self):
        bounds = Bounds(south=42.0, west=-72.0, north=43.0, east=-71.0)
        assert bounds.contains(LatLng(42.0, -72.0))
        assert bounds.contains(LatLng(43.0, -71.0))

    def test_missing_point_is_never_contained(self):
        assert not Bounds(0, 0, 1, 1).contains(None)

    def test_antimeridian_crossing(self):
        bounds = Bounds(south=-10.0, west=170.0, north=10.0, east=-170.0)
        assert bounds.contains(LatLng(0, 175))
        assert bounds.contains(LatLng(0, -175))
        assert not bounds.contains(LatLng(0, 0))

    def test_from_points(self):
        bounds = Bounds.from_points([LatLng(1, 5), LatLng(-2, 3), LatLng(0, 9)])
        assert bounds == Bounds(south=-2, west=3, north=1, east=9)
        assert Bounds.from_points([]) is None

    def test_from_points_across_antimeridian(self):
        bounds = Bounds.from_points([LatLng(-17.7, 178.4), LatLng(-18.1, -179.8), LatLng(-17.9, 179.9)])
        assert bounds == Bounds(south=-18.1, west=178.4, north=-17.7, east=-179.8)
        assert bounds.contains(LatLng(-18.0, 180.0))
        assert not bounds.contains(LatLng(-18.0, 0.0))
        assert bounds.center.lng == pytest.approx(179.3)

    def test_extend_inside_longitude_keeps_span(self):
        bounds = Bounds(south=0, west=170, north=1, east=-170)
        assert bounds.extend(LatLng(5, 180)) == Bounds(south=0, west=170, north=5, east=-170)


class TestResultEntry:

    def test_merge_prefers_newer_values(self):
        old = entry('a', name='Old Name', rating=4.0, category_tags=('restaurant',))
        new = ResultEntry(id='a', name='New Name', coordinates=LatLng(1, 2), category_tags=('bar',))
        merged = old.merge(new)
        assert merged.name == 'New Name'
        assert merged.coordinates == LatLng(1, 2)
        assert merged.rating == 4.0
        assert merged.category_tags == ('restaurant', 'bar')

    def test_merge_keeps_rank(self):
        ranked = entry('a', rank=3)
        assert ranked.merge(entry('a', 1, 2)).rank == 3

    def test_merge_rejects_different_ids(self):
        with pytest.raises(ValueError):
            entry('a').merge(entry('b'))

    def test_from_handoff_with_coordinates(self):
        e = ResultEntry.from_handoff(
            {'place_id': 'p1', 'name': 'Tacos', 'latitude': 42.1, 'longitude': -71.2, 'rating': 4.6, 'match_score': 0.9},
            rank=1,
        )
        assert e.id == 'p1'
        assert e.coordinates == LatLng(42.1, -71.2)
        assert e.rank == 1
        assert e.match_score == 0.9

    def test_from_handoff_without_coordinates(self):
        e = ResultEntry.from_handoff({'place_id': 'p2', 'name': 'Burritos'})
        assert e.coordinates is None
        assert e.address == ''


class TestDetailedResult:

    def test_from_entry_is_degraded(self):
        d = DetailedResult.from_entry(entry('a', 1, 2, rating=4.2))
        assert d.degraded
        assert d.rating == 4.2
        assert d.as_entry() == entry('a', 1, 2, rating=4.2)


class TestSelectionState:

    def test_transitions(self):
        e = entry('a', 1, 2)
        assert SelectionState.none().kind is SelectionKind.NONE
        resolving = SelectionState.resolving(e)
        assert resolving.is_loading
        assert resolving.entry_id == 'a'
        resolved = SelectionState.resolved(DetailedResult.from_entry(e, degraded=False))
        assert resolved.kind is SelectionKind.RESOLVED
        assert not resolved.is_loading
        assert resolved.to_dict()['detail']['id'] == 'a'


class TestDistance:

    def test_leg_ok_requires_distance(self):
        assert DistanceLeg('OK', 10).ok
        assert not DistanceLeg('OK').ok
        assert not DistanceLeg('ZERO_RESULTS', 10).ok

    def test_summary_labels_in_miles(self):
        summary = DistanceSummary(walking_average_m=1000, driving_average_m=None)
        assert summary.walking == "0.6 mi"
        assert summary.driving is None
