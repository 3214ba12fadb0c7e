"""Refresh cycle that fetches METARs, observations and forecasts into a WeatherStore."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Any, Awaitable, Callable, Dict, Hashable, Mapping, Optional, Tuple, TypeVar

from ..cache import ResultCache
from ..config import FetchOptions
from ..entities import Coordinates
from ..parsing.documents import Document
from ..parsing.extractors import parse_metar_records, parse_station_coordinates, parse_station_name
from ..parsing.timeseries import parse_time_series, zip_observations
from ..providers.base import MalformedDocument
from ..providers.fmi import (
    FORECAST_QUERY,
    METAR_QUERY,
    OBSERVATIONS_QUERY,
    FetchFailure,
    FetchResult,
    FmiQueryClient,
)
from ..store import Signal, WeatherStore

T = TypeVar("T")

OBSERVATION_PARAMETERS = ("winddirection", "windspeedms", "windgust", "n_man")
FORECAST_PARAMETERS = ("HourlyMaximumGust", "WindDirection", "WindSpeedMS", "MiddleAndLowCloudCover")

OBSERVATION_SERIES = {
    "gust": "obs-obs-1-1-windgust",
    "speed": "obs-obs-1-1-windspeedms",
    "direction": "obs-obs-1-1-winddirection",
}
FORECAST_SERIES = {
    "gust": "mts-1-1-HourlyMaximumGust",
    "speed": "mts-1-1-WindSpeedMS",
    "direction": "mts-1-1-WindDirection",
    "cloud_cover": "mts-1-1-MiddleAndLowCloudCover",
}

FORECAST_TIMESTEP_MINUTES = 10
FORECAST_DAY_START = time(7)
FORECAST_DAY_END = time(21)
CACHE_BUST_SECONDS = 30


class AcquisitionError(RuntimeError):
    """A data source branch failed; the message is shown to the user."""


class MissingInput(AcquisitionError):
    """A required station selector was not provided."""


@dataclass(frozen=True)
class RequestWindow:
    observation_start: datetime
    forecast_start: datetime
    forecast_end: datetime


def request_window(now: datetime, options: FetchOptions, tz: tzinfo = timezone.utc) -> RequestWindow:
    local = now.astimezone(tz)
    observation_start = (local - timedelta(hours=options.observation_range)).replace(
        minute=0, second=0, microsecond=0
    )
    if options.forecast_day > 0:
        day = local.date() + timedelta(days=options.forecast_day)
        return RequestWindow(
            observation_start=observation_start,
            forecast_start=datetime.combine(day, FORECAST_DAY_START, tzinfo=tz),
            forecast_end=datetime.combine(day, FORECAST_DAY_END, tzinfo=tz),
        )
    forecast_end = (local + timedelta(hours=options.forecast_range)).replace(
        minute=0, second=0, microsecond=0
    )
    return RequestWindow(observation_start=observation_start, forecast_start=local, forecast_end=forecast_end)


def cache_bust(now: datetime) -> int:
    """Bucket requests so identical queries within 30 seconds share a URL."""
    return int(now.timestamp() // CACHE_BUST_SECONDS)


def isoformat(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


async def _failed_fetch_is_stale(result: FetchResult) -> bool:
    return result is FetchFailure.ERROR


class AcquisitionOrchestrator:
    """Drive refresh cycles and publish their results.

    Every cycle gets a generation number. Writes from a cycle are dropped once a
    newer cycle has completed, so a slow cycle cannot overwrite fresher data.
    """

    def __init__(
        self,
        client: FmiQueryClient,
        store: WeatherStore,
        options: FetchOptions,
        *,
        tz: tzinfo = timezone.utc,
        clock: Optional[Callable[[], datetime]] = None,
        cache: Optional[ResultCache] = None,
        cache_max_age: float = 5 * 60,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.client = client
        self.store = store
        self.options = options
        self.tz = tz
        self.cache = cache or ResultCache(is_stale=_failed_fetch_is_stale)
        self.cache_max_age = cache_max_age
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._log = logger or logging.getLogger(self.__class__.__name__)
        self._generation = 0
        self._newest_completed = 0
        # cycles up to this generation fetched forecasts for a previously selected day
        self._day_selected_at = 0

    @property
    def generation(self) -> int:
        return self._generation

    def select_forecast_day(self, day: int) -> None:
        self.options = replace(self.options, forecast_day=day)
        self._day_selected_at = self._generation
        self.store.forecast_day.value = day

    async def run_refresh_cycle(self) -> None:
        self._generation += 1
        generation = self._generation
        options = self.options
        now = self._clock()
        self._log.info("Refresh cycle %d started", generation)

        self.cache.prune(self.cache_max_age)
        self.store.errors.value = []
        self.store.name.value = options.icaocode
        self.store.forecast_day.value = options.forecast_day

        window = request_window(now, options, self.tz)
        cch = cache_bust(now)

        metar_task: Optional[asyncio.Future] = None
        if options.icaocode:
            metar_task = asyncio.ensure_future(
                self._run_branch(generation, self._refresh_metars(generation, options.icaocode, window, cch))
            )
        else:
            self._report(generation, "Airport code (ICAO) is missing.")

        try:
            await self._run_branch(generation, self._refresh_weather(generation, options, window, cch))
        finally:
            if metar_task is not None:
                await metar_task
            self._newest_completed = max(self._newest_completed, generation)
            self._log.info("Refresh cycle %d finished with %d error(s)", generation, len(self.store.errors.value))

    # branches -----------------------------------------------------------
    async def _refresh_metars(self, generation: int, icaocode: str, window: RequestWindow, cch: int) -> None:
        document = await self._query(
            METAR_QUERY,
            {"cch": cch, "starttime": isoformat(window.observation_start), "icaocode": icaocode},
        )
        if document is None:
            raise AcquisitionError(f"Unknown airport code {icaocode}.")
        if document is FetchFailure.ERROR:
            raise AcquisitionError(f"Error fetching METAR messages for airport {icaocode}.")
        self._publish(generation, self.store.metars, parse_metar_records(document, now=self._clock()))

    async def _refresh_weather(self, generation: int, options: FetchOptions, window: RequestWindow, cch: int) -> None:
        coordinates = await self._refresh_observations(generation, options, window, cch)
        await self._refresh_forecasts(generation, coordinates, window, cch)

    async def _refresh_observations(
        self, generation: int, options: FetchOptions, window: RequestWindow, cch: int
    ) -> Coordinates:
        fmisid = options.fmisid
        if not fmisid:
            raise MissingInput("Observation station id (fmisid) is missing.")

        document = await self._query(
            OBSERVATIONS_QUERY,
            {
                "cch": cch,
                "starttime": isoformat(window.observation_start),
                "parameters": ",".join(OBSERVATION_PARAMETERS),
                "fmisid": fmisid,
            },
        )
        if document is None:
            raise AcquisitionError(f"Observation station {fmisid} was not found.")
        if document is FetchFailure.ERROR:
            raise AcquisitionError(f"Error fetching data for observation station {fmisid}.")

        try:
            station_name = parse_station_name(document)
            coordinates = parse_station_coordinates(document)
        except MalformedDocument as exc:
            self._log.warning("Station %s response incomplete: %s", fmisid, exc)
            raise AcquisitionError(f"Observation station {fmisid} does not seem to work here.") from exc

        self._publish(generation, self.store.station_name, station_name)
        if not self.store.name.value:
            self._publish(generation, self.store.name, station_name)
        self._publish(generation, self.store.coordinates, coordinates)

        now = self._clock()
        # newest first
        series = {
            field: list(reversed(parse_time_series(document, series_id, now=now)))
            for field, series_id in OBSERVATION_SERIES.items()
        }
        observations = zip_observations(series["gust"], series["speed"], series["direction"])
        self._publish(generation, self.store.observations, observations)
        return coordinates

    async def _refresh_forecasts(
        self, generation: int, coordinates: Coordinates, window: RequestWindow, cch: int
    ) -> None:
        document = await self._query(
            FORECAST_QUERY,
            {
                "cch": cch,
                "starttime": isoformat(window.forecast_start),
                "endtime": isoformat(window.forecast_end),
                "timestep": FORECAST_TIMESTEP_MINUTES,
                "parameters": ",".join(FORECAST_PARAMETERS),
                "latlon": coordinates.as_query(),
            },
        )
        if document is FetchFailure.ERROR:
            raise AcquisitionError("Error fetching forecasts.")
        if document is None:
            raise AcquisitionError("Forecasts were not found.")

        if generation <= self._day_selected_at:
            self._log.info("Discarding forecasts of cycle %d, forecast day changed since it started", generation)
            return
        forecasts = self._parse_forecasts(document)
        self._publish(generation, self.store.forecasts, forecasts)
        self._publish(generation, self.store.stale_forecasts, False)

    # helpers ------------------------------------------------------------
    def _parse_forecasts(self, document: Document):
        now = self._clock()
        series = {
            field: parse_time_series(document, series_id, now=now)
            for field, series_id in FORECAST_SERIES.items()
        }
        return zip_observations(series["gust"], series["speed"], series["direction"], series["cloud_cover"])

    async def _query(self, stored_query: str, params: Mapping[str, Any]) -> FetchResult:
        key = _cache_key(stored_query, params)
        return await self.cache.get_or_compute(key, lambda: self.client.fetch(stored_query, params))

    async def _run_branch(self, generation: int, branch: Awaitable[None]) -> None:
        try:
            await branch
        except AcquisitionError as exc:
            self._report(generation, str(exc))

    def _superseded(self, generation: int) -> bool:
        return generation < self._newest_completed

    def _publish(self, generation: int, signal: Signal[T], value: T) -> None:
        if self._superseded(generation):
            self._log.info("Discarding %s from superseded cycle %d", signal.name, generation)
            return
        signal.value = value

    def _report(self, generation: int, message: str) -> None:
        if self._superseded(generation):
            return
        self.store.add_error(message)


def _cache_key(stored_query: str, params: Mapping[str, Any]) -> Tuple[Hashable, ...]:
    items: Dict[str, str] = {key: str(value) for key, value in params.items() if value is not None}
    return (stored_query, *sorted(items.items()))


__all__ = [
    "AcquisitionError",
    "AcquisitionOrchestrator",
    "MissingInput",
    "RequestWindow",
    "cache_bust",
    "isoformat",
    "request_window",
]
