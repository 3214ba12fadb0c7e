"""Management command that runs refresh cycles with the same stack as the API."""
from __future__ import annotations

import asyncio
import json
from typing import Any

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from hyppykeli.config import FetchOptions
from hyppykeli.providers.base import RequestConfig
from hyppykeli.providers.fmi import FmiQueryClient
from hyppykeli.services.acquisition import AcquisitionOrchestrator
from hyppykeli.services.scheduler import RefreshScheduler
from hyppykeli.store import WeatherStore


class Command(BaseCommand):
    help = "Fetch observations, METARs and forecasts for a station and print the published state"

    def add_arguments(self, parser) -> None:  # noqa: D401
        parser.add_argument("--fmisid", type=str, help="FMI observation station id")
        parser.add_argument("--icaocode", type=str, help="Airport ICAO code for METAR messages")
        parser.add_argument("--forecast-day", type=int, default=0, help="0 = today, 1 = tomorrow, ...")
        parser.add_argument("--observation-range", type=int, default=None, help="Hours of observations")
        parser.add_argument("--forecast-range", type=int, default=None, help="Hours of forecasts")
        parser.add_argument("--lat", type=float, help="Dropzone latitude")
        parser.add_argument("--lon", type=float, help="Dropzone longitude")
        parser.add_argument("--watch", action="store_true", help="Keep refreshing on the configured interval")

    def handle(self, *args: Any, **options: Any) -> None:  # noqa: D401
        fetch_options = FetchOptions.from_mapping(
            {
                "fmisid": options.get("fmisid"),
                "icaocode": options.get("icaocode"),
                "forecast_day": options.get("forecast_day"),
                "observation_range": options.get("observation_range"),
                "forecast_range": options.get("forecast_range"),
                "lat": options.get("lat"),
                "lon": options.get("lon"),
            }
        )
        if not fetch_options.fmisid:
            raise CommandError("--fmisid is required")

        config = settings.HYPPYKELI
        store = WeatherStore(dropzone=fetch_options.dropzone)
        client = FmiQueryClient(
            base_url=config.fmi_base_url,
            request_config=RequestConfig(timeout=config.request_timeout),
            loading=store.loading,
            raw_data=store.raw_data,
        )
        orchestrator = AcquisitionOrchestrator(client, store, fetch_options, tz=config.tz)

        if options.get("watch"):
            try:
                asyncio.run(self._watch(orchestrator, config.refresh_interval))
            except KeyboardInterrupt:
                return
            return

        asyncio.run(orchestrator.run_refresh_cycle())
        self._write(store)

    async def _watch(self, orchestrator: AcquisitionOrchestrator, interval: float) -> None:
        scheduler = RefreshScheduler(
            orchestrator,
            interval=interval,
            on_cycle_done=lambda: self._write(orchestrator.store),
        )
        scheduler.start()
        try:
            await asyncio.Event().wait()
        finally:
            await scheduler.stop()

    def _write(self, store: WeatherStore) -> None:
        self.stdout.write(json.dumps(store.snapshot()))
