"""Runtime settings and per-request fetch options."""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import tzinfo
from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo

from .entities import Coordinates


DEFAULT_OBSERVATION_RANGE = 12
DEFAULT_FORECAST_RANGE = 8


@dataclass(frozen=True)
class Settings:
    fmi_base_url: str = "https://opendata.fmi.fi/wfs"
    request_timeout: float = 10.0
    refresh_interval: float = 60.0
    local_time_zone: str = "Europe/Helsinki"
    observation_max_age_minutes: int = 20

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        environ = os.environ if environ is None else environ
        return cls(
            fmi_base_url=environ.get("FMI_BASE_URL", cls.fmi_base_url),
            request_timeout=float(environ.get("FMI_TIMEOUT", cls.request_timeout)),
            refresh_interval=float(environ.get("REFRESH_INTERVAL_SECONDS", cls.refresh_interval)),
            local_time_zone=environ.get("LOCAL_TIME_ZONE", cls.local_time_zone),
            observation_max_age_minutes=int(
                environ.get("OBSERVATION_MAX_AGE_MINUTES", cls.observation_max_age_minutes)
            ),
        )

    @property
    def tz(self) -> tzinfo:
        return ZoneInfo(self.local_time_zone)


@dataclass(frozen=True)
class FetchOptions:
    """What to fetch: station selectors and time windows.

    Numeric options that are missing, unparseable or zero fall back to their
    defaults, mirroring how the values arrive from page query strings.
    """

    fmisid: Optional[str] = None
    icaocode: Optional[str] = None
    forecast_day: int = 0
    observation_range: int = DEFAULT_OBSERVATION_RANGE
    forecast_range: int = DEFAULT_FORECAST_RANGE
    dropzone: Optional[Coordinates] = None

    @classmethod
    def from_mapping(cls, params: Mapping[str, Any]) -> "FetchOptions":
        return cls(
            fmisid=_text(params.get("fmisid")),
            icaocode=_text(params.get("icaocode")),
            forecast_day=_number(params.get("forecast_day"), 0),
            observation_range=_number(params.get("observation_range"), DEFAULT_OBSERVATION_RANGE),
            forecast_range=_number(params.get("forecast_range"), DEFAULT_FORECAST_RANGE),
            dropzone=_dropzone(params.get("lat"), params.get("lon")),
        )


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _number(value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        number = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default
    return number or default


def _dropzone(lat: Any, lon: Any) -> Optional[Coordinates]:
    if lat is None or lon is None:
        return None
    try:
        return Coordinates(lat=float(lat), lon=float(lon))
    except (TypeError, ValueError):
        return None


__all__ = ["FetchOptions", "Settings"]
