"""Observable values published to the display layer.

``Signal`` holds a value and notifies subscribers synchronously when it
changes. ``Computed`` derives a value from explicit dependency signals and is
recalculated on every dependency change.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

from .entities import Coordinates, MetarRecord, WeatherObservation

T = TypeVar("T")

Subscriber = Callable[[Any], None]

TREND_WINDOW = timedelta(hours=1)

logger = logging.getLogger(__name__)


class Signal(Generic[T]):
    def __init__(self, value: T, name: str = "") -> None:
        self.name = name
        self._value = value
        self._subscribers: List[Subscriber] = []

    @property
    def value(self) -> T:
        return self._value

    @value.setter
    def value(self, value: T) -> None:
        self._set(value)

    def update(self, func: Callable[[T], T]) -> None:
        self._set(func(self._value))

    def subscribe(self, func: Subscriber) -> Callable[[], None]:
        """Register ``func``; returns a callable that removes the subscription."""
        self._subscribers.append(func)

        def unsubscribe() -> None:
            if func in self._subscribers:
                self._subscribers.remove(func)

        return unsubscribe

    def _set(self, value: T) -> None:
        if value == self._value:
            return
        self._value = value
        for func in list(self._subscribers):
            func(value)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name or '?'}={self._value!r})"


class Computed(Signal[T]):
    def __init__(self, func: Callable[[], T], dependencies: Sequence[Signal], name: str = "") -> None:
        super().__init__(func(), name=name)
        self._func = func
        for dependency in dependencies:
            dependency.subscribe(self._recompute)

    @property
    def value(self) -> T:
        return self._value

    @value.setter
    def value(self, value: T) -> None:
        raise AttributeError(f"computed value {self.name or '?'} is read-only")

    def update(self, func: Callable[[T], T]) -> None:
        raise AttributeError(f"computed value {self.name or '?'} is read-only")

    def refresh(self) -> None:
        """Recalculate explicitly, e.g. when only the clock has moved."""
        self._set(self._func())

    def _recompute(self, _changed: Any) -> None:
        self._set(self._func())


def gust_trend(
    observations: Sequence[WeatherObservation],
    forecasts: Sequence[WeatherObservation],
    now: datetime,
) -> float:
    """Mean forecast gust within the next hour minus the latest observed gust."""
    horizon = now + TREND_WINDOW
    upcoming = [point.gust for point in forecasts if point.timestamp <= horizon]
    if not upcoming:
        return 0.0
    latest = max(observations, key=lambda point: point.timestamp).gust if observations else 0.0
    return sum(upcoming) / len(upcoming) - latest


class WeatherStore:
    """All state published by one acquisition orchestrator."""

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        dropzone: Optional[Coordinates] = None,
    ) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.dropzone = dropzone

        self.name: Signal[Optional[str]] = Signal(None, "name")
        self.loading: Signal[int] = Signal(0, "loading")
        self.stale_forecasts: Signal[bool] = Signal(True, "stale_forecasts")
        self.station_name: Signal[Optional[str]] = Signal(None, "station_name")
        self.coordinates: Signal[Optional[Coordinates]] = Signal(None, "coordinates")
        self.observations: Signal[List[WeatherObservation]] = Signal([], "observations")
        self.forecasts: Signal[List[WeatherObservation]] = Signal([], "forecasts")
        self.metars: Signal[Optional[List[MetarRecord]]] = Signal(None, "metars")
        self.errors: Signal[List[str]] = Signal([], "errors")
        self.raw_data: Signal[Dict[str, str]] = Signal({}, "raw_data")
        # 0 = today, 1 = tomorrow, ...
        self.forecast_day: Signal[int] = Signal(0, "forecast_day")

        self.forecast_day.subscribe(self._mark_forecasts_stale)

        self.trend: Computed[float] = Computed(
            lambda: gust_trend(self.observations.value, self.forecasts.value, self._clock()),
            [self.observations, self.forecasts, self.forecast_day],
            name="trend",
        )
        self.forecast_date: Computed[date] = Computed(
            lambda: (self._clock() + timedelta(days=self.forecast_day.value)).date(),
            [self.forecast_day],
            name="forecast_date",
        )
        self.station_distance_m: Computed[Optional[int]] = Computed(
            self._station_distance,
            [self.coordinates],
            name="station_distance_m",
        )

    def add_error(self, message: str) -> None:
        logger.warning("%s", message)
        self.errors.update(lambda errors: [*errors, message])

    def latest_observation(self) -> Optional[WeatherObservation]:
        observations = self.observations.value
        if not observations:
            return None
        return max(observations, key=lambda point: point.timestamp)

    def snapshot(self) -> Dict[str, Any]:
        coordinates = self.coordinates.value
        metars = self.metars.value
        return {
            "name": self.name.value,
            "station_name": self.station_name.value,
            "coordinates": coordinates.as_dict() if coordinates else None,
            "station_distance_m": self.station_distance_m.value,
            "observations": [point.as_dict() for point in self.observations.value],
            "forecasts": [point.as_dict() for point in self.forecasts.value],
            "metars": [record.as_dict() for record in metars] if metars is not None else None,
            "trend": self.trend.value,
            "errors": list(self.errors.value),
            "loading": self.loading.value,
            "forecast_day": self.forecast_day.value,
            "forecast_date": self.forecast_date.value.isoformat(),
            "stale_forecasts": self.stale_forecasts.value,
        }

    def _mark_forecasts_stale(self, _day: int) -> None:
        self.stale_forecasts.value = True

    def _station_distance(self) -> Optional[int]:
        coordinates = self.coordinates.value
        if coordinates is None or self.dropzone is None:
            return None
        return coordinates.distance_m(self.dropzone)


__all__ = ["Computed", "Signal", "WeatherStore", "gust_trend"]
