"""Fetch raw feeds and turn them into snapshots, plus the degradation policy."""

import logging
import random
from datetime import datetime, timedelta, timezone

import httpx

from where_the_bus.config import BoundingBox, Settings
from where_the_bus.decoder import decode
from where_the_bus.exceptions import FetchError
from where_the_bus.models import FeedSnapshot, Provenance, VehicleClass, VehiclePosition
from where_the_bus.transport import Transport, build_transports

logger = logging.getLogger(__name__)

MOCK_FLEET_SIZE = {VehicleClass.BUS: 12, VehicleClass.TRAIN: 6}
_MOCK_ROUTES = {
    VehicleClass.BUS: ["1", "2", "10", "39", "110"],
    VehicleClass.TRAIN: ["RED", "GOLD", "BLUE", "GREEN"],
}


def mock_snapshot(
    feed_type: VehicleClass,
    bbox: BoundingBox,
    seed: int,
    now: datetime | None = None,
) -> FeedSnapshot:
    """Deterministic fake fleet for a feed type.

    Positions and ids depend only on ``seed`` and the feed type; only the
    timestamps follow ``now``.
    """
    now = now or datetime.now(timezone.utc)
    rng = random.Random(f"{seed}:{feed_type.value}")
    prefix = "B" if feed_type == VehicleClass.BUS else "T"
    vehicles = []
    for i in range(MOCK_FLEET_SIZE[feed_type]):
        vehicles.append(
            VehiclePosition(
                id=f"{prefix}{1000 + i}",
                vehicle_class=feed_type,
                route_id=rng.choice(_MOCK_ROUTES[feed_type]),
                latitude=round(rng.uniform(bbox.min_lat, bbox.max_lat), 6),
                longitude=round(rng.uniform(bbox.min_lng, bbox.max_lng), 6),
                heading=float(rng.randrange(0, 360)),
                speed=round(rng.uniform(0, 20), 1),
                observed_at=now - timedelta(seconds=rng.randrange(0, 30)),
            )
        )
    return FeedSnapshot(
        vehicle_class=feed_type,
        vehicles=tuple(vehicles),
        captured_at=now,
        provenance=Provenance.MOCK,
    )


class FeedAcquirer:
    """Fetch and decode one feed type per call.

    Raises :class:`FetchError` or :class:`DecodeError`; degrading those into
    snapshots is the cache's job.
    """

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient | None = None,
        transports: dict[VehicleClass, Transport] | None = None,
    ):
        self.settings = settings
        self.mock_mode = settings.mock_mode
        self._client = client
        self._owns_client = client is None
        self._transports = transports or build_transports(settings)
        self._urls = {
            VehicleClass.BUS: settings.bus_feed_url,
            VehicleClass.TRAIN: settings.train_feed_url,
        }

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def aclose(self):
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def acquire(self, feed_type: VehicleClass) -> FeedSnapshot:
        if self.mock_mode:
            return mock_snapshot(
                feed_type, self.settings.service_area, self.settings.mock_seed
            )

        url = self._urls[feed_type]
        transport = self._transports[feed_type]
        try:
            resp = await transport.get(self.client, url, self.settings.fetch_timeout)
        except httpx.TimeoutException as exc:
            raise FetchError.timeout(url) from exc
        except httpx.HTTPError as exc:
            raise FetchError.unreachable(url, str(exc)) from exc

        if not resp.is_success:
            raise FetchError.upstream_status(resp.status_code, url)

        now = datetime.now(timezone.utc)
        vehicles = decode(resp.content, feed_type, self.settings.service_area, now)
        logger.debug("[%s] decoded %d vehicles", feed_type.value, len(vehicles))
        return FeedSnapshot(
            vehicle_class=feed_type,
            vehicles=tuple(vehicles),
            captured_at=now,
            provenance=Provenance.LIVE,
        )


# ── Fallback policy ──────────────────────────────────────────────────


def degrade(
    feed_type: VehicleClass,
    last_good: FeedSnapshot | None,
    last_good_age: float | None,
    grace_window: float,
    now: datetime | None = None,
) -> FeedSnapshot:
    """Build the snapshot served when a live fetch failed.

    The last live snapshot is reused, tagged ``cached``, while it is younger
    than ``grace_window`` seconds. Otherwise an empty ``error`` snapshot.
    """
    if (
        last_good is not None
        and last_good_age is not None
        and last_good_age <= grace_window
    ):
        return last_good.model_copy(update={"provenance": Provenance.CACHED})
    return FeedSnapshot(
        vehicle_class=feed_type,
        vehicles=(),
        captured_at=now or datetime.now(timezone.utc),
        provenance=Provenance.ERROR,
    )


def combine_provenance(
    bus: FeedSnapshot, train: FeedSnapshot, mock_mode: bool = False
) -> Provenance:
    if mock_mode:
        return Provenance.MOCK
    degraded = [s.degraded for s in (bus, train)]
    if all(degraded):
        return Provenance.ERROR
    if any(degraded):
        return Provenance.PARTIAL
    if bus.provenance == Provenance.MOCK and train.provenance == Provenance.MOCK:
        return Provenance.MOCK
    return Provenance.LIVE
