from datetime import datetime, timezone

import pytest

from where_the_bus.interpolation import (
    DEFAULT_DURATION,
    AnimationState,
    FleetAnimator,
    HeadingAnimator,
    VehicleAnimator,
    ease_out_cubic,
    shortest_arc,
)
from where_the_bus.models import FeedSnapshot, Provenance, VehicleClass, VehiclePosition


def test_ease_out_cubic_endpoints():
    assert ease_out_cubic(0) == 0
    assert ease_out_cubic(1) == 1
    assert ease_out_cubic(0.5) == pytest.approx(0.875)


def test_ease_out_cubic_monotonic():
    samples = [ease_out_cubic(i / 200) for i in range(201)]
    assert all(b >= a for a, b in zip(samples, samples[1:]))


def test_ease_out_cubic_clamps():
    assert ease_out_cubic(-1) == 0
    assert ease_out_cubic(2) == 1


def test_animation_progress_endpoints():
    anim = AnimationState(start=(33.70, -84.40), target=(33.71, -84.38), started_at=10)
    assert anim.position(10) == (33.70, -84.40)
    assert anim.position(10 + DEFAULT_DURATION) == (33.71, -84.38)
    assert anim.position(100) == (33.71, -84.38)


def test_animation_axes_independent():
    anim = AnimationState(
        start=(0.0, 10.0), target=(1.0, 10.0), started_at=0, duration=2
    )
    lat, lng = anim.position(1)
    assert lat == pytest.approx(0.875)
    assert lng == 10.0


def test_set_target_animates_from_current_position():
    animator = VehicleAnimator(33.70, -84.40)
    assert animator.set_target(33.72, -84.40, now=0)
    assert animator.position_at(0) == (33.70, -84.40)
    mid = animator.position_at(1)
    assert 33.70 < mid[0] < 33.72
    assert animator.position_at(2) == (33.72, -84.40)
    assert animator.animation is None


def test_set_target_same_position_is_noop():
    animator = VehicleAnimator(33.70, -84.40)
    assert animator.set_target(33.70, -84.40, now=0) is False
    assert animator.animation is None


def test_new_target_mid_flight_restarts_from_displayed_point():
    animator = VehicleAnimator(0.0, 0.0, duration=2)
    animator.set_target(1.0, 0.0, now=0)
    displayed = animator.position_at(1)

    animator.set_target(0.0, 1.0, now=1)

    anim = animator.animation
    assert anim.start == displayed
    assert anim.target == (0.0, 1.0)
    assert anim.started_at == 1
    assert animator.position_at(1) == displayed
    assert animator.position_at(3) == (0.0, 1.0)


def test_shortest_arc():
    assert shortest_arc(350, 10) == 20
    assert shortest_arc(10, 350) == -20
    assert shortest_arc(0, 180) == 180


def test_heading_rotates_the_short_way():
    heading = HeadingAnimator(350, duration=2)
    heading.set_target(10, now=0)
    mid = heading.heading_at(1)
    assert mid > 350 or mid < 10
    assert heading.heading_at(2) == pytest.approx(10)


def _snapshot(*positions):
    t = datetime(2026, 2, 19, 12, 0, tzinfo=timezone.utc)
    return FeedSnapshot(
        vehicle_class=VehicleClass.BUS,
        vehicles=tuple(
            VehiclePosition(
                id=vid,
                vehicle_class=VehicleClass.BUS,
                latitude=lat,
                longitude=lng,
                heading=heading,
                observed_at=t,
            )
            for vid, lat, lng, heading in positions
        ),
        captured_at=t,
        provenance=Provenance.LIVE,
    )


def test_fleet_animator_follows_snapshots():
    fleet = FleetAnimator(duration=2)
    fleet.update(
        _snapshot(("a", 33.70, -84.40, 0.0), ("b", 33.80, -84.30, None)), now=0
    )
    assert fleet.frame(0) == {"a": (33.70, -84.40, 0.0), "b": (33.80, -84.30, None)}

    fleet.update(_snapshot(("a", 33.72, -84.40, 90.0)), now=10)
    assert len(fleet) == 1
    lat, lng, heading = fleet.frame(11)["a"]
    assert 33.70 < lat < 33.72
    assert 0 < heading < 90
    assert fleet.frame(12)["a"] == (33.72, -84.40, 90.0)
