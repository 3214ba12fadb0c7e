from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import parse_qs, urlsplit

import pytest

WFS_URL = "https://fmi.test/wfs"

NOW = datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc)

_NAMESPACES = (
    'xmlns:wfs="http://www.opengis.net/wfs/2.0" '
    'xmlns:gml="http://www.opengis.net/gml/3.2" '
    'xmlns:om="http://www.opengis.net/om/2.0" '
    'xmlns:omso="http://inspire.ec.europa.eu/schemas/omso/3.0" '
    'xmlns:sams="http://www.opengis.net/samplingSpatial/2.0" '
    'xmlns:target="http://xml.fmi.fi/namespace/om/atmosphericfeatures/1.1" '
    'xmlns:wml2="http://www.opengis.net/waterml/2.0" '
    'xmlns:avi="http://xml.fmi.fi/namespace/aviation-weather/2014/02/15" '
    'xmlns:iwxxm="http://icao.int/iwxxm/2.1" '
    'xmlns:aixm="http://www.aixm.aero/schema/5.1.1" '
    'xmlns:xlink="http://www.w3.org/1999/xlink"'
)

Series = Sequence[Tuple[str, Optional[float]]]


class FmiDocuments:
    """Builders for trimmed-down FMI WFS responses."""

    @staticmethod
    def series(series_id: str, points: Series) -> str:
        body = "".join(
            "<wml2:point><wml2:MeasurementTVP>"
            f"<wml2:time>{time}</wml2:time>"
            + (f"<wml2:value>{value}</wml2:value>" if value is not None else "")
            + "</wml2:MeasurementTVP></wml2:point>"
            for time, value in points
        )
        return (
            "<wfs:member><omso:PointTimeSeriesObservation><om:result>"
            f'<wml2:MeasurementTimeseries gml:id="{series_id}">{body}</wml2:MeasurementTimeseries>'
            "</om:result></omso:PointTimeSeriesObservation></wfs:member>"
        )

    @classmethod
    def observations(
        cls,
        gusts: Series,
        speeds: Series = (),
        directions: Series = (),
        name: Optional[str] = "Jämijärvi lentokenttä",
        pos: Optional[str] = "61.77 22.72",
    ) -> str:
        location = ""
        if name is not None:
            location = (
                "<target:Location>"
                f'<gml:name codeSpace="http://xml.fmi.fi/namespace/locationcode/name">{name}</gml:name>'
                '<gml:name codeSpace="http://xml.fmi.fi/namespace/locationcode/geoid">-16000094</gml:name>'
                "</target:Location>"
            )
        shape = f"<gml:Point><gml:pos>{pos} </gml:pos></gml:Point>" if pos is not None else ""
        members = (
            cls.series("obs-obs-1-1-windgust", gusts)
            + cls.series("obs-obs-1-1-windspeedms", speeds)
            + cls.series("obs-obs-1-1-winddirection", directions)
        )
        return (
            f"<wfs:FeatureCollection {_NAMESPACES}>"
            f"<wfs:member><sams:shape>{shape}</sams:shape>{location}</wfs:member>"
            f"{members}</wfs:FeatureCollection>"
        )

    @classmethod
    def forecasts(
        cls,
        gusts: Series,
        speeds: Series = (),
        directions: Series = (),
        cloud_cover: Series = (),
    ) -> str:
        members = (
            cls.series("mts-1-1-HourlyMaximumGust", gusts)
            + cls.series("mts-1-1-WindSpeedMS", speeds)
            + cls.series("mts-1-1-WindDirection", directions)
            + cls.series("mts-1-1-MiddleAndLowCloudCover", cloud_cover)
        )
        return f"<wfs:FeatureCollection {_NAMESPACES}>{members}</wfs:FeatureCollection>"

    @staticmethod
    def metar_member(
        text: Optional[str],
        time: str = "2024-06-01T09:50:00Z",
        elevation: Optional[str] = "112",
        clouds: Sequence[Tuple[Optional[str], Optional[str]]] = (),
    ) -> str:
        layers = ""
        for base, href in clouds:
            amount = f'<iwxxm:amount xlink:href="{href}"/>' if href is not None else "<iwxxm:amount/>"
            base_xml = f'<iwxxm:base uom="[ft_i]">{base}</iwxxm:base>' if base is not None else ""
            layers += f"<iwxxm:layer><iwxxm:CloudLayer>{amount}{base_xml}</iwxxm:CloudLayer></iwxxm:layer>"
        source = f"<avi:source><avi:Process><avi:input>{text}</avi:input></avi:Process></avi:source>" if text else ""
        field_elevation = f'<aixm:fieldElevation uom="M">{elevation}</aixm:fieldElevation>' if elevation else ""
        return (
            "<wfs:member><avi:VerifiableMessage>"
            f"{source}"
            "<avi:message><iwxxm:METAR>"
            f"<iwxxm:observationTime><gml:TimeInstant><gml:timePosition>{time}</gml:timePosition>"
            "</gml:TimeInstant></iwxxm:observationTime>"
            f"<iwxxm:aerodrome>{field_elevation}</iwxxm:aerodrome>"
            "<iwxxm:observation><om:OM_Observation><om:result>"
            f"<iwxxm:MeteorologicalAerodromeObservationRecord><iwxxm:cloud><iwxxm:AerodromeObservedClouds>"
            f"{layers}</iwxxm:AerodromeObservedClouds></iwxxm:cloud>"
            "</iwxxm:MeteorologicalAerodromeObservationRecord>"
            "</om:result></om:OM_Observation></iwxxm:observation>"
            "</iwxxm:METAR></avi:message></avi:VerifiableMessage></wfs:member>"
        )

    @classmethod
    def metars(cls, *members: str) -> str:
        return f"<wfs:FeatureCollection {_NAMESPACES}>{''.join(members)}</wfs:FeatureCollection>"


class FakeWfs:
    """Answer stored queries on ``WFS_URL`` by ``storedquery_id``; unknown queries get 404."""

    def __init__(self, mocker, url: str = WFS_URL) -> None:
        self.url = url
        self.responses: Dict[str, Tuple[int, str]] = {}
        self.calls: List[Tuple[str, Dict[str, str]]] = []
        mocker.get(url, text=self._respond)

    def respond(self, stored_query: str, body: str = "", status: int = 200) -> None:
        self.responses[stored_query] = (status, body)

    def calls_for(self, stored_query: str) -> List[Dict[str, str]]:
        return [params for query, params in self.calls if query == stored_query]

    def _respond(self, request, context) -> str:
        params = {key: values[0] for key, values in parse_qs(urlsplit(request.url).query).items()}
        stored_query = params["storedquery_id"]
        self.calls.append((stored_query, params))
        status, body = self.responses.get(stored_query, (404, ""))
        context.status_code = status
        return body


@pytest.fixture()
def documents() -> type:
    return FmiDocuments


@pytest.fixture()
def wfs(requests_mock) -> FakeWfs:
    return FakeWfs(requests_mock)


@pytest.fixture()
def now() -> datetime:
    return NOW
