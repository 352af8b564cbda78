import logging
from typing import Iterable, List, Optional, Tuple

from .capabilities import DistanceService
from .errors import EngineError, PartialData
from .geo_math import average
from .models import DistanceLeg, DistanceSummary, LatLng, ResultEntry, TravelMode


logger = logging.getLogger(__name__)


class DistanceAggregator:
    """
    Average walking and driving distance from the user to a result set.

    The two phases run strictly in sequence against a shared request quota:
    driving is only requested once walking has come back (fully or partially).
    """

    def __init__(self, distance_service: DistanceService):
        self.distance_service = distance_service

    async def summarize(self, entries: Iterable[ResultEntry], user_location: Optional[LatLng]) -> Optional[DistanceSummary]:
        if user_location is None:
            return None
        destinations = [e.coordinates for e in entries if e.coordinates is not None]
        if not destinations:
            return None

        walking_ok, walking_avg = await self._phase(user_location, destinations, TravelMode.WALKING)
        if not walking_ok:
            return None

        _, driving_avg = await self._phase(user_location, destinations, TravelMode.DRIVING)

        if walking_avg is None and driving_avg is None:
            return None
        summary = DistanceSummary(walking_average_m=walking_avg, driving_average_m=driving_avg)
        logger.info("Distance summary over %d destinations: walking=%s driving=%s",
                    len(destinations), summary.walking, summary.driving)
        return summary

    async def _phase(self, origin: LatLng, destinations: List[LatLng], mode: TravelMode) -> Tuple[bool, Optional[float]]:
        """Returns (request succeeded at least partially, average over valid legs)."""
        try:
            legs = await self.distance_service.distance_matrix_async(origin, destinations, mode)
        except PartialData as e:
            logger.warning("%s distances partially failed: %s", mode.value, e)
            legs = e.partial
        except EngineError as e:
            logger.warning("%s distance request failed: %s", mode.value, e)
            return False, None

        valid = [leg.distance_meters for leg in legs if isinstance(leg, DistanceLeg) and leg.ok]
        dropped = len(legs) - len(valid)
        if dropped:
            logger.debug("%s: dropped %d of %d legs", mode.value, dropped, len(legs))
        return True, average(valid)
