from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from django.test import Client

from backend.api.views import get_observation_feed
from hyppykeli.providers.fmi import OBSERVATIONS_QUERY, FmiQueryClient
from hyppykeli.services.feed import FeedError, ObservationFeed, StationNotFound, serialize_payload


def stamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


@pytest.fixture(autouse=True)
def fresh_feed():
    get_observation_feed.cache_clear()
    yield
    get_observation_feed.cache_clear()


def recent_gusts(minutes_ago: int):
    newest = datetime.now(timezone.utc).replace(second=0, microsecond=0) - timedelta(minutes=minutes_ago)
    return [(stamp(newest - timedelta(minutes=10)), 4.0), (stamp(newest), 6.0)]


def test_observations_endpoint_returns_payload(wfs, documents) -> None:
    gusts = recent_gusts(minutes_ago=5)
    wfs.respond(OBSERVATIONS_QUERY, documents.observations(gusts=gusts))

    response = Client().get("/api/observations", {"fmisid": "101464"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["fmisid"] == "101464"
    assert payload["station"] == "Jämijärvi lentokenttä"
    assert payload["coordinates"] == {"lat": 61.77, "lon": 22.72}
    assert payload["newest"] == gusts[-1][0]
    assert [point["gust"] for point in payload["observations"]] == [6.0, 4.0]
    assert payload["observations"][0]["direction"] == -1.0


def test_fresh_payload_is_served_from_cache(wfs, documents) -> None:
    wfs.respond(OBSERVATIONS_QUERY, documents.observations(gusts=recent_gusts(minutes_ago=5)))
    client = Client()

    client.get("/api/observations", {"fmisid": "101464"})
    response = client.get("/api/observations", {"fmisid": "101464"})

    assert response.status_code == 200
    assert len(wfs.calls_for(OBSERVATIONS_QUERY)) == 1


def test_old_payload_is_refetched(wfs, documents) -> None:
    wfs.respond(OBSERVATIONS_QUERY, documents.observations(gusts=recent_gusts(minutes_ago=45)))
    client = Client()

    client.get("/api/observations", {"fmisid": "101464"})
    client.get("/api/observations", {"fmisid": "101464"})

    assert len(wfs.calls_for(OBSERVATIONS_QUERY)) == 2


def test_observations_endpoint_requires_station() -> None:
    response = Client().get("/api/observations")

    assert response.status_code == 400
    assert "detail" in response.json()


def test_unknown_station_is_404(wfs) -> None:
    wfs.respond(OBSERVATIONS_QUERY, "", status=404)

    response = Client().get("/api/observations", {"fmisid": "1"})

    assert response.status_code == 404
    assert "detail" in response.json()


def test_upstream_failure_is_502(wfs) -> None:
    wfs.respond(OBSERVATIONS_QUERY, "down", status=500)

    response = Client().get("/api/observations", {"fmisid": "101464"})

    assert response.status_code == 502


def test_feed_retries_after_failure(wfs, documents, now) -> None:
    feed = ObservationFeed(FmiQueryClient(base_url="https://fmi.test/wfs"), clock=lambda: now)

    async def scenario():
        wfs.respond(OBSERVATIONS_QUERY, "", status=404)
        with pytest.raises(StationNotFound):
            await feed.latest("101464")
        wfs.respond(OBSERVATIONS_QUERY, documents.observations(gusts=[("2024-06-01T09:50:00Z", 6.0)]))
        return await feed.latest("101464")

    payload = asyncio.run(scenario())

    assert payload["newest"] == datetime(2024, 6, 1, 9, 50, tzinfo=timezone.utc)
    assert serialize_payload(payload)["newest"] == "2024-06-01T09:50:00Z"
    assert len(wfs.calls_for(OBSERVATIONS_QUERY)) == 2


def test_feed_without_observations_is_always_old(now) -> None:
    feed = ObservationFeed(FmiQueryClient(base_url="https://fmi.test/wfs"), clock=lambda: now)

    assert asyncio.run(feed.is_data_old({"newest": None})) is True
    assert asyncio.run(feed.is_data_old({"newest": now - timedelta(minutes=5)})) is False


def test_feed_incomplete_station_document(wfs, documents, now) -> None:
    wfs.respond(OBSERVATIONS_QUERY, documents.observations(gusts=[], name=None))
    feed = ObservationFeed(FmiQueryClient(base_url="https://fmi.test/wfs"), clock=lambda: now)

    with pytest.raises(FeedError):
        asyncio.run(feed.latest("101464"))
