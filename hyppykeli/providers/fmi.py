"""Client for the FMI open data WFS stored queries.

Docs: https://opendata.fmi.fi/wfs?service=WFS&version=2.0.0&request=describeStoredQueries
"""
from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from .base import MalformedDocument, NotFound, ProviderError, QueryProvider
from ..parsing.documents import Document, parse_document
from ..store import Signal


OBSERVATIONS_QUERY = "fmi::observations::weather::timevaluepair"
METAR_QUERY = "fmi::avi::observations::iwxxm"
FORECAST_QUERY = "fmi::forecast::edited::weather::scandinavia::point::timevaluepair"

STORED_QUERIES = (OBSERVATIONS_QUERY, METAR_QUERY, FORECAST_QUERY)


class FetchFailure(str, Enum):
    ERROR = "error"


FetchResult = Union[Document, None, FetchFailure]


class FmiQueryClient(QueryProvider):
    """Run one stored query and classify the outcome.

    ``fetch`` returns the parsed document, ``None`` when the service answers 404
    (unknown station or airport) and ``FetchFailure.ERROR`` for every other
    failure. The ``loading`` signal counts requests in flight.
    """

    base_url = "https://opendata.fmi.fi/wfs"

    def __init__(
        self,
        base_url: Optional[str] = None,
        loading: Optional[Signal[int]] = None,
        raw_data: Optional[Signal[Dict[str, str]]] = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.base_url = base_url or self.base_url
        self.loading = loading if loading is not None else Signal(0, "loading")
        self.raw_data = raw_data if raw_data is not None else Signal({}, "raw_data")

    async def fetch(self, stored_query: str, params: Mapping[str, Any]) -> FetchResult:
        self.loading.value += 1
        try:
            return await self._fetch(stored_query, params)
        finally:
            self.loading.value -= 1

    def build_params(self, stored_query: str, params: Mapping[str, Any]) -> Dict[str, str]:
        query = {"request": "getFeature", "storedquery_id": stored_query}
        for key, value in params.items():
            if value is None:
                continue
            query[key] = str(value)
        return query

    # helpers ------------------------------------------------------------
    async def _fetch(self, stored_query: str, params: Mapping[str, Any]) -> FetchResult:
        query = self.build_params(stored_query, params)
        self._log.debug("Requesting %s with %s", stored_query, query)
        try:
            response = await asyncio.to_thread(self._request, "GET", self.base_url, params=query)
        except NotFound:
            return None
        except ProviderError as exc:
            self._log.error("Stored query %s failed: %s", stored_query, exc)
            return FetchFailure.ERROR

        self.raw_data.update(lambda raw: {**raw, stored_query: response.text})
        try:
            return parse_document(response.content)
        except MalformedDocument as exc:
            self._log.error("Failed to parse %s", response.url, exc_info=exc)
            return FetchFailure.ERROR


__all__ = [
    "FORECAST_QUERY",
    "METAR_QUERY",
    "OBSERVATIONS_QUERY",
    "STORED_QUERIES",
    "FetchFailure",
    "FetchResult",
    "FmiQueryClient",
]
