"""The engine as collaborators see it: vehicles and geofence alerts."""

import asyncio
import logging
from datetime import datetime, timezone

import httpx

from where_the_bus.acquirer import FeedAcquirer, combine_provenance
from where_the_bus.cache import PositionCache
from where_the_bus.config import Settings
from where_the_bus.geofence import GeofenceMatcher
from where_the_bus.models import (
    FeedSnapshot,
    GeofenceResponse,
    Provenance,
    VehicleClass,
    VehiclesResponse,
)
from where_the_bus.zones import ZoneStore, load_zones

logger = logging.getLogger(__name__)


class TransitService:
    def __init__(
        self,
        settings: Settings,
        acquirer: FeedAcquirer | None = None,
        zone_store: ZoneStore | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings
        self.acquirer = acquirer or FeedAcquirer(settings, client=client)
        self.cache = PositionCache(
            self.acquirer.acquire,
            ttl=settings.feed_ttl,
            timeout=settings.fetch_timeout,
            grace_window=settings.grace_window,
            failure_ttl=settings.failure_ttl,
        )
        if zone_store is None:
            zone_store = ZoneStore(
                load_zones(settings.zones_path) if settings.zones_path else []
            )
        self.zones = zone_store
        self.matcher = GeofenceMatcher(
            zone_store,
            bucket_meters=settings.geofence_bucket_meters,
            ttl=settings.geofence_ttl,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "TransitService":
        return cls(settings.validate())

    async def feed(self, vehicle_class: VehicleClass) -> FeedSnapshot:
        return await self.cache.get_or_fetch(vehicle_class)

    async def vehicles(self) -> VehiclesResponse:
        bus, train = await asyncio.gather(
            self.cache.get_or_fetch(VehicleClass.BUS),
            self.cache.get_or_fetch(VehicleClass.TRAIN),
        )
        source = combine_provenance(bus, train, self.settings.mock_mode)
        if source not in (Provenance.LIVE, Provenance.MOCK):
            logger.info(
                "Serving %s vehicles (bus=%s, train=%s)",
                source.value,
                bus.provenance.value,
                train.provenance.value,
            )
        return VehiclesResponse(
            buses=list(bus.vehicles),
            trains=list(train.vehicles),
            timestamp=datetime.now(timezone.utc),
            source=source,
        )

    def check_geofence(self, lat: float, lng: float) -> GeofenceResponse:
        alerts = self.matcher.check(lat, lng)
        return GeofenceResponse(
            alerts=alerts, triggered_zone_ids=[z.id for z in alerts]
        )

    def feed_status(self) -> dict[str, str]:
        status = {}
        for vc in VehicleClass:
            snap = self.cache.peek(vc)
            status[vc.value] = snap.provenance.value if snap else "empty"
        return status

    async def aclose(self):
        await self.acquirer.aclose()
