"""Which alert zones contain a point.

Results are cached per grid bucket so a device reporting every few seconds
does not trigger a full zone scan each time. A point near a zone edge can
therefore lag the true answer by up to the cache TTL.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

from where_the_bus.geo import haversine_m
from where_the_bus.models import GeofenceZone
from where_the_bus.zones import ZoneStore

logger = logging.getLogger(__name__)

METERS_PER_DEGREE_LAT = 111_320.0
RESULT_CACHE_MAX = 5000
RESULT_CACHE_EVICT = 500


@dataclass
class GeofenceCheckResult:
    zone_ids: tuple[str, ...]
    expires_at: float  # monotonic


class GeofenceMatcher:
    def __init__(
        self,
        store: ZoneStore,
        bucket_meters: float = 75,
        ttl: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.bucket_meters = bucket_meters
        self.ttl = ttl
        self._clock = clock
        self._results: dict[tuple[int, int, int], GeofenceCheckResult] = {}

    def bucket(self, lat: float, lng: float) -> tuple[int, int]:
        lat_step = self.bucket_meters / METERS_PER_DEGREE_LAT
        row = round(lat / lat_step)
        # Columns shrink with latitude so buckets stay roughly square.
        cos_lat = max(math.cos(math.radians(row * lat_step)), 1e-6)
        lng_step = lat_step / cos_lat
        return row, round(lng / lng_step)

    def check(self, lat: float, lng: float) -> list[GeofenceZone]:
        zones = self.store.snapshot()
        key = (self.store.version, *self.bucket(lat, lng))
        now = self._clock()

        cached = self._results.get(key)
        if cached is not None and now < cached.expires_at:
            by_id = {z.id: z for z in zones}
            return [by_id[zid] for zid in cached.zone_ids if zid in by_id]

        hits = []
        for zone in zones:
            if not zone.active:
                continue
            d = haversine_m(lat, lng, zone.latitude, zone.longitude)
            if d <= zone.radius_m:
                hits.append((zone.priority.rank, d, zone))
        hits.sort(key=lambda h: (h[0], h[1]))
        triggered = [h[2] for h in hits]

        self._put(
            key, GeofenceCheckResult(tuple(z.id for z in triggered), now + self.ttl)
        )
        if triggered:
            logger.debug(
                "Point (%.5f, %.5f) triggered %d zones", lat, lng, len(triggered)
            )
        return triggered

    def _put(self, key, result: GeofenceCheckResult):
        if len(self._results) >= RESULT_CACHE_MAX:
            now = self._clock()
            self._results = {
                k: v for k, v in self._results.items() if v.expires_at > now
            }
            if len(self._results) >= RESULT_CACHE_MAX:
                # Drop a batch of the oldest so the next inserts are cheap.
                by_age = sorted(
                    self._results, key=lambda k: self._results[k].expires_at
                )
                for k in by_age[:RESULT_CACHE_EVICT]:
                    del self._results[k]
        self._results[key] = result
