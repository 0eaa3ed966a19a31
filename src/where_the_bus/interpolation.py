"""Smooth discrete position updates into continuous marker motion.

Feeds update every ~30s; markers glide to each new position over a fixed
duration with ease-out cubic timing. A new target mid-flight restarts from
wherever the marker is drawn at that moment.
"""

import time
from dataclasses import dataclass
from typing import Callable

from where_the_bus.models import FeedSnapshot

DEFAULT_DURATION = 2.0  # seconds

Point = tuple[float, float]


def clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, value))


def ease_out_cubic(t: float) -> float:
    t = clamp(t)
    return 1 - (1 - t) ** 3


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


@dataclass
class AnimationState:
    start: Point
    target: Point
    started_at: float
    duration: float = DEFAULT_DURATION
    easing: Callable[[float], float] = ease_out_cubic

    def progress(self, now: float) -> float:
        if self.duration <= 0:
            return 1.0
        return clamp((now - self.started_at) / self.duration)

    def position(self, now: float) -> Point:
        p = self.progress(now)
        if p >= 1.0:
            return self.target
        e = self.easing(p)
        return (
            lerp(self.start[0], self.target[0], e),
            lerp(self.start[1], self.target[1], e),
        )


class VehicleAnimator:
    """Displayed position of one marker."""

    def __init__(
        self,
        lat: float,
        lng: float,
        duration: float = DEFAULT_DURATION,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._settled: Point = (lat, lng)
        self._animation: AnimationState | None = None
        self.duration = duration
        self._clock = clock

    @property
    def animation(self) -> AnimationState | None:
        return self._animation

    @property
    def target(self) -> Point:
        return self._animation.target if self._animation else self._settled

    def position_at(self, now: float | None = None) -> Point:
        if self._animation is None:
            return self._settled
        now = self._clock() if now is None else now
        pos = self._animation.position(now)
        if self._animation.progress(now) >= 1.0:
            self._settled = self._animation.target
            self._animation = None
        return pos

    def set_target(self, lat: float, lng: float, now: float | None = None) -> bool:
        """Start gliding toward (lat, lng). Returns False when nothing moves."""
        now = self._clock() if now is None else now
        current = self.position_at(now)
        if current == (lat, lng):
            self._settled = current
            self._animation = None
            return False
        self._animation = AnimationState(
            start=current,
            target=(lat, lng),
            started_at=now,
            duration=self.duration,
        )
        return True


def shortest_arc(start: float, end: float) -> float:
    """Signed rotation in degrees from start to end, in (-180, 180]."""
    delta = (end - start) % 360
    return delta - 360 if delta > 180 else delta


class HeadingAnimator:
    """Marker rotation, eased on its own clock so it never holds up movement."""

    def __init__(
        self,
        heading: float,
        duration: float = DEFAULT_DURATION,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._start = heading % 360
        self._delta = 0.0
        self._started_at = 0.0
        self.duration = duration
        self._clock = clock

    def heading_at(self, now: float | None = None) -> float:
        if self._delta == 0.0:
            return self._start
        now = self._clock() if now is None else now
        p = 1.0
        if self.duration > 0:
            p = clamp((now - self._started_at) / self.duration)
        return (self._start + self._delta * ease_out_cubic(p)) % 360

    def set_target(self, heading: float, now: float | None = None) -> bool:
        now = self._clock() if now is None else now
        current = self.heading_at(now)
        delta = shortest_arc(current, heading)
        if delta == 0:
            return False
        self._start = current
        self._delta = delta
        self._started_at = now
        return True


class FleetAnimator:
    """Animators for every vehicle in a feed, driven by consecutive snapshots."""

    def __init__(
        self,
        duration: float = DEFAULT_DURATION,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.duration = duration
        self._clock = clock
        self._positions: dict[str, VehicleAnimator] = {}
        self._headings: dict[str, HeadingAnimator] = {}

    def __len__(self):
        return len(self._positions)

    def update(self, snapshot: FeedSnapshot, now: float | None = None):
        now = self._clock() if now is None else now
        seen = set()
        for v in snapshot.vehicles:
            seen.add(v.id)
            animator = self._positions.get(v.id)
            if animator is None:
                # First sighting: place it, nothing to glide from.
                self._positions[v.id] = VehicleAnimator(
                    v.latitude, v.longitude, self.duration, self._clock
                )
            else:
                animator.set_target(v.latitude, v.longitude, now)
            if v.heading is not None:
                heading = self._headings.get(v.id)
                if heading is None:
                    self._headings[v.id] = HeadingAnimator(
                        v.heading, self.duration, self._clock
                    )
                else:
                    heading.set_target(v.heading, now)
        for gone in set(self._positions) - seen:
            del self._positions[gone]
            self._headings.pop(gone, None)

    def frame(
        self, now: float | None = None
    ) -> dict[str, tuple[float, float, float | None]]:
        now = self._clock() if now is None else now
        out = {}
        for vid, animator in self._positions.items():
            lat, lng = animator.position_at(now)
            heading = self._headings.get(vid)
            out[vid] = (lat, lng, heading.heading_at(now) if heading else None)
        return out
