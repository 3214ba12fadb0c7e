"""Latest combined observations for one station, cached until the data gets old."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from ..cache import ResultCache
from ..parsing.extractors import parse_station_coordinates, parse_station_name
from ..parsing.timeseries import parse_time_series, zip_observations
from ..providers.base import MalformedDocument
from ..providers.fmi import OBSERVATIONS_QUERY, FetchFailure, FmiQueryClient
from .acquisition import OBSERVATION_PARAMETERS, OBSERVATION_SERIES, isoformat

DEFAULT_MAX_AGE = timedelta(minutes=20)
DEFAULT_RANGE = timedelta(hours=12)


class FeedError(RuntimeError):
    """Raised when the observation document cannot be produced."""


class StationNotFound(FeedError):
    """Raised when FMI does not know the requested station."""


class ObservationFeed:
    def __init__(
        self,
        client: FmiQueryClient,
        *,
        max_age: timedelta = DEFAULT_MAX_AGE,
        observation_range: timedelta = DEFAULT_RANGE,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.client = client
        self.max_age = max_age
        self.observation_range = observation_range
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.cache: ResultCache[str, Dict[str, Any]] = ResultCache(is_stale=self.is_data_old)
        self._log = logging.getLogger(self.__class__.__name__)

    async def latest(self, fmisid: str) -> Dict[str, Any]:
        return await self.cache.get_or_compute(fmisid, lambda: self._produce(fmisid))

    async def is_data_old(self, payload: Dict[str, Any]) -> bool:
        newest = payload.get("newest")
        if newest is None:
            return True
        return self._clock() - newest > self.max_age

    async def _produce(self, fmisid: str) -> Dict[str, Any]:
        now = self._clock()
        start = (now - self.observation_range).replace(minute=0, second=0, microsecond=0)
        document = await self.client.fetch(
            OBSERVATIONS_QUERY,
            {
                "starttime": isoformat(start),
                "parameters": ",".join(OBSERVATION_PARAMETERS),
                "fmisid": fmisid,
            },
        )
        if document is None:
            raise StationNotFound(f"Observation station {fmisid} was not found")
        if document is FetchFailure.ERROR:
            raise FeedError(f"Error fetching data for observation station {fmisid}")

        try:
            station = parse_station_name(document)
            coordinates = parse_station_coordinates(document)
        except MalformedDocument as exc:
            raise FeedError(f"Observation station {fmisid} returned an incomplete document") from exc

        series = {
            field: list(reversed(parse_time_series(document, series_id, now=now)))
            for field, series_id in OBSERVATION_SERIES.items()
        }
        observations = zip_observations(series["gust"], series["speed"], series["direction"])
        newest = max((point.timestamp for point in observations), default=None)
        self._log.info("Fetched %d observations for station %s", len(observations), fmisid)
        return {
            "fmisid": fmisid,
            "station": station,
            "coordinates": coordinates.as_dict(),
            "newest": newest,
            "observations": [point.as_dict() for point in observations],
        }


def serialize_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(payload)
    newest = result.get("newest")
    result["newest"] = isoformat(newest) if newest is not None else None
    return result


__all__ = ["FeedError", "ObservationFeed", "StationNotFound", "serialize_payload"]
