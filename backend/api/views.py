"""REST API views for station observations."""
from __future__ import annotations

from datetime import timedelta
from functools import lru_cache

from asgiref.sync import async_to_sync
from django.conf import settings
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from hyppykeli.providers.base import RequestConfig
from hyppykeli.providers.fmi import FmiQueryClient
from hyppykeli.services.feed import FeedError, ObservationFeed, StationNotFound, serialize_payload


@lru_cache(maxsize=1)
def get_observation_feed() -> ObservationFeed:
    config = settings.HYPPYKELI
    client = FmiQueryClient(
        base_url=config.fmi_base_url,
        request_config=RequestConfig(timeout=config.request_timeout),
    )
    return ObservationFeed(client, max_age=timedelta(minutes=config.observation_max_age_minutes))


class ObservationsView(APIView):
    """Serve the latest combined observations of one FMI station."""

    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):  # noqa: D401
        """Return observations for the station given as ``fmisid``."""
        fmisid = (request.query_params.get("fmisid") or "").strip()
        if not fmisid:
            return Response({"detail": "fmisid query parameter is required"}, status=status.HTTP_400_BAD_REQUEST)

        try:
            payload = async_to_sync(get_observation_feed().latest)(fmisid)
        except StationNotFound as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
        except FeedError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_502_BAD_GATEWAY)
        return Response(serialize_payload(payload), status=status.HTTP_200_OK)
