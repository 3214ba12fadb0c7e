from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

MISSING_VALUE = -1.0

_EARTH_RADIUS_M = 6_371_000.0


@dataclass(frozen=True)
class TimeSeriesPoint:
    timestamp: datetime
    value: float


@dataclass(frozen=True)
class WeatherObservation:
    """Wind values for one timestamp, combined from separately parsed series.

    Speeds are in metres per second and direction in degrees. Companion values
    missing from a shorter series are set to ``MISSING_VALUE``.
    """

    gust: float
    speed: float
    direction: float
    cloud_cover: Optional[float]
    timestamp: datetime

    def as_dict(self) -> Dict[str, Any]:
        return {
            "gust": self.gust,
            "speed": self.speed,
            "direction": self.direction,
            "cloud_cover": self.cloud_cover,
            "timestamp": _isoformat(self.timestamp),
        }


@dataclass(frozen=True)
class CloudLayer:
    """Single cloud layer from a METAR message.

    ``amount`` is the WMO code (0-20-008) taken from the end of ``href``.
    """

    base: float
    unit: str
    amount: str
    href: str

    def as_dict(self) -> Dict[str, Any]:
        return {"base": self.base, "unit": self.unit, "amount": self.amount, "href": self.href}


@dataclass(frozen=True)
class MetarRecord:
    timestamp: datetime
    elevation: float
    metar: str
    clouds: Tuple[CloudLayer, ...] = field(default_factory=tuple)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": _isoformat(self.timestamp),
            "elevation": self.elevation,
            "metar": self.metar,
            "clouds": [layer.as_dict() for layer in self.clouds],
        }


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lon: float

    @classmethod
    def parse(cls, text: str) -> "Coordinates":
        """Parse an FMI ``gml:pos`` value such as ``"61.25 26.46"``."""
        parts = text.split()
        if len(parts) != 2:
            raise ValueError(f"expected 'lat lon', got {text!r}")
        return cls(lat=float(parts[0]), lon=float(parts[1]))

    def as_query(self) -> str:
        return f"{self.lat},{self.lon}"

    def distance_m(self, other: "Coordinates") -> int:
        """Great-circle distance to ``other`` rounded to whole metres."""
        lat1, lon1, lat2, lon2 = map(math.radians, (self.lat, self.lon, other.lat, other.lon))
        dlat = lat2 - lat1
        dlon = lon2 - lon1
        a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
        return round(2 * _EARTH_RADIUS_M * math.asin(math.sqrt(a)))

    def as_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lon": self.lon}


def _isoformat(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


__all__ = [
    "MISSING_VALUE",
    "CloudLayer",
    "Coordinates",
    "MetarRecord",
    "TimeSeriesPoint",
    "WeatherObservation",
]
