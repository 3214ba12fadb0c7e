from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Sequence

from .documents import Document, Node
from ..entities import MISSING_VALUE, TimeSeriesPoint, WeatherObservation


def parse_time_series(
    document: Document,
    series_id: str,
    now: Optional[datetime] = None,
) -> List[TimeSeriesPoint]:
    """Return the points of the ``MeasurementTimeseries`` with ``gml:id == series_id``.

    A missing series is not an error; FMI omits parameters a station does not
    measure. Points without a value default to ``0`` and points without a time
    default to ``now``.
    """
    node = document.find_where("MeasurementTimeseries", "gml:id", series_id)
    if node is None:
        return []
    return points_to_time_series(node, now=now)


def points_to_time_series(node: Node, now: Optional[datetime] = None) -> List[TimeSeriesPoint]:
    now = now or datetime.now(timezone.utc)
    return [
        TimeSeriesPoint(
            timestamp=parse_time(point.find_text("time"), now),
            value=_parse_value(point.find_text("value")),
        )
        for point in node.iter("point")
    ]


def zip_observations(
    gusts: Sequence[TimeSeriesPoint],
    speeds: Sequence[TimeSeriesPoint],
    directions: Sequence[TimeSeriesPoint],
    cloud_cover: Sequence[TimeSeriesPoint] = (),
) -> List[WeatherObservation]:
    """Align series by position. The gust series decides the record count."""
    return [
        WeatherObservation(
            gust=gust.value,
            speed=_value_at(speeds, idx, MISSING_VALUE),
            direction=_value_at(directions, idx, MISSING_VALUE),
            cloud_cover=_value_at(cloud_cover, idx, None),
            timestamp=gust.timestamp,
        )
        for idx, gust in enumerate(gusts)
    ]


def parse_time(value: Optional[str], default: datetime) -> datetime:
    if not value:
        return default
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return default
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_value(value: Optional[str]) -> float:
    if value is None:
        return 0.0
    try:
        return float(value)
    except ValueError:
        return 0.0


def _value_at(points: Sequence[TimeSeriesPoint], index: int, default):
    try:
        return points[index].value
    except IndexError:
        return default


__all__ = ["parse_time", "parse_time_series", "points_to_time_series", "zip_observations"]
