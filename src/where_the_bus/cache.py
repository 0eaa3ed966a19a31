"""Per-feed-type snapshot cache with single-flight refreshes.

At most one upstream fetch per feed type is in flight. Concurrent callers
share it; once a snapshot exists, stale reads are answered immediately
while the refresh runs in the background.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable

from where_the_bus.acquirer import degrade
from where_the_bus.exceptions import DecodeError, FetchError
from where_the_bus.models import FeedSnapshot, Provenance, VehicleClass

logger = logging.getLogger(__name__)

Fetcher = Callable[[VehicleClass], Awaitable[FeedSnapshot]]


@dataclass
class CacheEntry:
    snapshot: FeedSnapshot
    expires_at: float  # monotonic


def merge_newer(
    previous: FeedSnapshot | None, incoming: FeedSnapshot
) -> FeedSnapshot:
    """Keep the newer record per vehicle id.

    Vehicles missing from ``incoming`` are not carried over; positions are
    transient.
    """
    if previous is None:
        return incoming
    prior = {v.id: v for v in previous.vehicles}
    merged = []
    kept_old = 0
    for v in incoming.vehicles:
        old = prior.get(v.id)
        if old is not None and old.observed_at > v.observed_at:
            merged.append(old)
            kept_old += 1
        else:
            merged.append(v)
    if not kept_old:
        return incoming
    logger.debug(
        "[%s] kept %d newer positions over out-of-order updates",
        incoming.vehicle_class.value,
        kept_old,
    )
    return incoming.model_copy(update={"vehicles": tuple(merged)})


class PositionCache:
    def __init__(
        self,
        fetch: Fetcher,
        ttl: float = 30,
        timeout: float = 10,
        grace_window: float = 150,
        failure_ttl: float = 5,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch = fetch
        self.ttl = ttl
        self.timeout = timeout
        self.grace_window = grace_window
        self.failure_ttl = failure_ttl
        self._clock = clock
        self._entries: dict[VehicleClass, CacheEntry] = {}
        self._last_good: dict[VehicleClass, tuple[float, FeedSnapshot]] = {}
        self._inflight: dict[VehicleClass, asyncio.Task] = {}

    def peek(self, feed_type: VehicleClass) -> FeedSnapshot | None:
        entry = self._entries.get(feed_type)
        return entry.snapshot if entry else None

    def in_flight(self, feed_type: VehicleClass) -> bool:
        return feed_type in self._inflight

    async def get_or_fetch(self, feed_type: VehicleClass) -> FeedSnapshot:
        entry = self._entries.get(feed_type)
        if entry is not None and self._clock() < entry.expires_at:
            return entry.snapshot

        task = self._inflight.get(feed_type)
        if task is None:
            task = asyncio.create_task(self._refresh(feed_type))
            self._inflight[feed_type] = task
            task.add_done_callback(lambda t, ft=feed_type: self._release(ft, t))

        if entry is not None:
            return self._stale_view(feed_type, entry.snapshot)
        # Cold start: nothing to serve yet. Shield so one impatient caller
        # cannot cancel the fetch everyone else is waiting on.
        return await asyncio.shield(task)

    def _stale_view(
        self, feed_type: VehicleClass, snapshot: FeedSnapshot
    ) -> FeedSnapshot:
        """What a caller sees while a refresh is pending.

        Past its TTL, live data is only served as `cached`, and only while
        the last good fetch is inside the grace window.
        """
        if snapshot.provenance not in (Provenance.LIVE, Provenance.CACHED):
            return snapshot
        last = self._last_good.get(feed_type)
        if last is None:
            return snapshot
        fetched_at, last_snapshot = last
        return degrade(
            feed_type,
            last_snapshot,
            self._clock() - fetched_at,
            self.grace_window,
            now=datetime.now(timezone.utc),
        )

    def _release(self, feed_type: VehicleClass, task: asyncio.Task):
        if self._inflight.get(feed_type) is task:
            del self._inflight[feed_type]

    async def _refresh(self, feed_type: VehicleClass) -> FeedSnapshot:
        try:
            snapshot = await asyncio.wait_for(self._fetch(feed_type), self.timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "[%s] fetch exceeded %.0fs, serving degraded snapshot",
                feed_type.value,
                self.timeout,
            )
            return self._store_degraded(feed_type)
        except (FetchError, DecodeError) as exc:
            logger.warning(
                "[%s] fetch failed (%s): %s", feed_type.value, exc.kind.value, exc
            )
            return self._store_degraded(feed_type)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[%s] unexpected error refreshing feed", feed_type.value)
            return self._store_degraded(feed_type)

        now = self._clock()
        if snapshot.provenance == Provenance.LIVE:
            previous = self._last_good.get(feed_type)
            snapshot = merge_newer(previous[1] if previous else None, snapshot)
            self._last_good[feed_type] = (now, snapshot)
        self._entries[feed_type] = CacheEntry(snapshot, now + self.ttl)
        logger.info(
            "[%s] cached %d vehicles (%s)",
            feed_type.value,
            len(snapshot.vehicles),
            snapshot.provenance.value,
        )
        return snapshot

    def _store_degraded(self, feed_type: VehicleClass) -> FeedSnapshot:
        now = self._clock()
        last = self._last_good.get(feed_type)
        if last is None:
            snapshot = degrade(feed_type, None, None, self.grace_window)
        else:
            fetched_at, last_snapshot = last
            snapshot = degrade(
                feed_type,
                last_snapshot,
                now - fetched_at,
                self.grace_window,
                now=datetime.now(timezone.utc),
            )
        self._entries[feed_type] = CacheEntry(snapshot, now + self.failure_ttl)
        return snapshot
