"""Tests for the two-phase walking-then-driving distance chain."""

import pytest

from fakes import FakeDistanceService, entry
from result_map.distance_aggregator import DistanceAggregator
from result_map.errors import PartialData, ProviderUnavailable
from result_map.models import DistanceLeg, LatLng, TravelMode


USER = LatLng(42.3601, -71.0589)
ENTRIES = [entry('a', 42.36, -71.06), entry('b', 42.37, -71.07), entry('c', 42.38, -71.08)]


class TestDistanceAggregator:

    @pytest.mark.asyncio
    async def test_failed_walking_leg_is_dropped(self):
        service = FakeDistanceService({
            TravelMode.WALKING: [('OK', 800), ('OK', 1200), ('ZERO_RESULTS', None)],
            TravelMode.DRIVING: [('OK', 1500), ('OK', 2000), ('OK', 2500)],
        })
        summary = await DistanceAggregator(service).summarize(ENTRIES, USER)
        assert summary.walking_average_m == 1000
        assert summary.walking == "0.6 mi"
        assert summary.driving_average_m == 2000
        assert summary.driving == "1.2 mi"

    @pytest.mark.asyncio
    async def test_walking_runs_before_driving_with_same_destinations(self):
        service = FakeDistanceService({
            TravelMode.WALKING: [('OK', 100)] * 3,
            TravelMode.DRIVING: [('OK', 200)] * 3,
        })
        await DistanceAggregator(service).summarize(ENTRIES, USER)
        assert [mode for mode, _ in service.calls] == [TravelMode.WALKING, TravelMode.DRIVING]
        assert service.calls[0][1] == service.calls[1][1] == [e.coordinates for e in ENTRIES]

    @pytest.mark.asyncio
    async def test_no_driving_request_when_walking_fails(self):
        service = FakeDistanceService({
            TravelMode.WALKING: ProviderUnavailable("quota exceeded"),
            TravelMode.DRIVING: [('OK', 200)] * 3,
        })
        summary = await DistanceAggregator(service).summarize(ENTRIES, USER)
        assert summary is None
        assert [mode for mode, _ in service.calls] == [TravelMode.WALKING]

    @pytest.mark.asyncio
    async def test_driving_still_requested_when_no_walking_leg_is_valid(self):
        service = FakeDistanceService({
            TravelMode.WALKING: [('NOT_FOUND', None)] * 3,
            TravelMode.DRIVING: [('OK', 3000)] * 3,
        })
        summary = await DistanceAggregator(service).summarize(ENTRIES, USER)
        assert summary.walking is None
        assert summary.driving_average_m == 3000

    @pytest.mark.asyncio
    async def test_driving_failure_gives_walking_only(self):
        service = FakeDistanceService({
            TravelMode.WALKING: [('OK', 500)] * 3,
            TravelMode.DRIVING: ProviderUnavailable("backend down"),
        })
        summary = await DistanceAggregator(service).summarize(ENTRIES, USER)
        assert summary.walking_average_m == 500
        assert summary.driving is None

    @pytest.mark.asyncio
    async def test_partial_walking_phase_counts_as_success(self):
        service = FakeDistanceService({
            TravelMode.WALKING: PartialData("second chunk failed", partial=[DistanceLeg('OK', 600), DistanceLeg('UNKNOWN_ERROR')]),
            TravelMode.DRIVING: [('OK', 900)] * 3,
        })
        summary = await DistanceAggregator(service).summarize(ENTRIES, USER)
        assert summary.walking_average_m == 600
        assert summary.driving_average_m == 900

    @pytest.mark.asyncio
    async def test_no_located_destinations_is_absent(self):
        service = FakeDistanceService()
        summary = await DistanceAggregator(service).summarize([entry('a'), entry('b')], USER)
        assert summary is None
        assert service.calls == []

    @pytest.mark.asyncio
    async def test_only_located_entries_are_queried(self):
        service = FakeDistanceService({
            TravelMode.WALKING: [('OK', 100)],
            TravelMode.DRIVING: [('OK', 200)],
        })
        await DistanceAggregator(service).summarize([entry('a', 42.36, -71.06), entry('b')], USER)
        assert service.calls[0][1] == [LatLng(42.36, -71.06)]

    @pytest.mark.asyncio
    async def test_no_user_location_is_absent(self):
        service = FakeDistanceService()
        assert await DistanceAggregator(service).summarize(ENTRIES, None) is None
        assert service.calls == []

    @pytest.mark.asyncio
    async def test_both_phases_empty_is_absent(self):
        service = FakeDistanceService({
            TravelMode.WALKING: [('NOT_FOUND', None)] * 3,
            TravelMode.DRIVING: [('NOT_FOUND', None)] * 3,
        })
        assert await DistanceAggregator(service).summarize(ENTRIES, USER) is None
