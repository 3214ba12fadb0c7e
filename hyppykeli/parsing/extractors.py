"""Field extractors for FMI observation and aviation (IWXXM) responses."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import urlsplit

from .documents import Document, Node
from .timeseries import parse_time
from ..entities import MISSING_VALUE, CloudLayer, Coordinates, MetarRecord
from ..providers.base import MalformedDocument


logger = logging.getLogger(__name__)

LOCATION_NAME_CODESPACE = "http://xml.fmi.fi/namespace/locationcode/name"


def parse_station_name(document: Document) -> str:
    node = document.find_where("name", "codeSpace", LOCATION_NAME_CODESPACE)
    name = node.text if node is not None else ""
    if not name:
        raise MalformedDocument("station name missing")
    return name


def parse_station_coordinates(document: Document) -> Coordinates:
    text = document.find_text("pos")
    if not text:
        raise MalformedDocument("station position missing")
    try:
        return Coordinates.parse(text)
    except ValueError as exc:
        raise MalformedDocument(f"invalid station position {text!r}") from exc


def parse_metar_records(document: Document, now: Optional[datetime] = None) -> List[MetarRecord]:
    """Collect METAR messages and their cloud layers.

    Members without raw METAR text are skipped. Invalid cloud layers are skipped
    individually and do not drop their message.
    """
    now = now or datetime.now(timezone.utc)
    records: List[MetarRecord] = []
    for member in document.find_all("member"):
        metar = member.find_text("source input")
        if not metar:
            continue
        records.append(
            MetarRecord(
                timestamp=parse_time(member.find_text("timePosition"), now),
                elevation=_parse_float(member.find_text("fieldElevation"), MISSING_VALUE),
                metar=metar,
                clouds=tuple(_parse_cloud_layers(member)),
            )
        )
    return records


def _parse_cloud_layers(member: Node) -> List[CloudLayer]:
    cloud = member.find("MeteorologicalAerodromeObservationRecord cloud")
    if cloud is None:
        return []
    layers: List[CloudLayer] = []
    for node in cloud.iter("CloudLayer"):
        layer = _parse_cloud_layer(node)
        if layer is not None:
            layers.append(layer)
    return layers


def _parse_cloud_layer(node: Node) -> Optional[CloudLayer]:
    base = node.find("base")
    if base is None:
        return None
    height = _parse_float(base.text, None)
    if height is None:
        return None
    amount_node = node.find("amount")
    href = amount_node.attr("xlink:href") if amount_node is not None else None
    if not href:
        return None
    # e.g. https://codes.wmo.int/bufr4/codeflag/0-20-008/1
    amount = urlsplit(href).path.split("/")[-1]
    if not amount:
        logger.debug("Cloud amount code missing from %s", href)
        return None
    return CloudLayer(base=height, unit=base.attr("uom") or "?", amount=amount, href=href)


def _parse_float(value: Optional[str], default):
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


__all__ = [
    "LOCATION_NAME_CODESPACE",
    "parse_metar_records",
    "parse_station_coordinates",
    "parse_station_name",
]
