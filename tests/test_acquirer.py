from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from where_the_bus.acquirer import (
    FeedAcquirer,
    combine_provenance,
    degrade,
    mock_snapshot,
)
from where_the_bus.exceptions import DecodeError, FetchError, FetchErrorKind
from where_the_bus.models import (
    FeedSnapshot,
    Provenance,
    VehicleClass,
    VehiclePosition,
)

from feeds import (
    SAMPLE_BUS_RECORDS,
    SAMPLE_TRAIN_VEHICLES,
    bus_feed_bytes,
    train_feed_bytes,
)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _upstream_handler(request: httpx.Request) -> httpx.Response:
    if "bus.example.com" in request.url.host:
        return httpx.Response(200, content=bus_feed_bytes(SAMPLE_BUS_RECORDS))
    return httpx.Response(200, content=train_feed_bytes(SAMPLE_TRAIN_VEHICLES))


def _snapshot(vc, provenance, n=1):
    now = datetime.now(timezone.utc)
    vehicles = tuple(
        VehiclePosition(
            id=f"v{i}",
            vehicle_class=vc,
            latitude=33.75,
            longitude=-84.39,
            observed_at=now,
        )
        for i in range(n)
    )
    return FeedSnapshot(
        vehicle_class=vc, vehicles=vehicles, captured_at=now, provenance=provenance
    )


async def test_acquire_live_bus_and_train(make_settings):
    async with _client(_upstream_handler) as client:
        acquirer = FeedAcquirer(make_settings(), client=client)
        bus = await acquirer.acquire(VehicleClass.BUS)
        train = await acquirer.acquire(VehicleClass.TRAIN)

    assert bus.provenance == Provenance.LIVE
    assert bus.vehicle_class == VehicleClass.BUS
    assert [v.id for v in bus.vehicles] == ["2301", "2417"]
    assert train.provenance == Provenance.LIVE
    assert [v.id for v in train.vehicles] == ["T101", "T202"]


async def test_acquire_through_relay(make_settings):
    seen = []

    def handler(request):
        seen.append(request.url)
        return httpx.Response(200, content=train_feed_bytes(SAMPLE_TRAIN_VEHICLES))

    settings = make_settings(
        DEPLOYMENT_CONTEXT="relayed", RELAY_URL="https://relay.example.com/fetch"
    )
    async with _client(handler) as client:
        snapshot = await FeedAcquirer(settings, client=client).acquire(
            VehicleClass.TRAIN
        )

    assert snapshot.provenance == Provenance.LIVE
    assert seen[0].host == "relay.example.com"
    assert parse_qs(urlsplit(str(seen[0])).query)["url"] == [settings.train_feed_url]


async def test_acquire_timeout(make_settings):
    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    async with _client(handler) as client:
        with pytest.raises(FetchError) as exc:
            await FeedAcquirer(make_settings(), client=client).acquire(
                VehicleClass.TRAIN
            )
    assert exc.value.kind == FetchErrorKind.TIMEOUT


async def test_acquire_unreachable(make_settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(FetchError) as exc:
            await FeedAcquirer(make_settings(), client=client).acquire(VehicleClass.BUS)
    assert exc.value.kind == FetchErrorKind.UNREACHABLE


async def test_acquire_upstream_status(make_settings):
    async with _client(lambda request: httpx.Response(503)) as client:
        with pytest.raises(FetchError) as exc:
            await FeedAcquirer(make_settings(), client=client).acquire(VehicleClass.BUS)
    assert exc.value.kind == FetchErrorKind.UPSTREAM_STATUS
    assert exc.value.status_code == 503


async def test_acquire_propagates_decode_error(make_settings):
    async with _client(lambda request: httpx.Response(200, content=b"{}")) as client:
        with pytest.raises(DecodeError):
            await FeedAcquirer(make_settings(), client=client).acquire(VehicleClass.BUS)


def _layout(snapshot):
    return [(v.id, v.route_id, v.latitude, v.longitude) for v in snapshot.vehicles]


async def test_mock_mode_never_touches_network(make_settings):
    def handler(request):
        raise AssertionError("network used in mock mode")

    settings = make_settings(MOCK_MODE="true", MOCK_SEED="3")
    async with _client(handler) as client:
        acquirer = FeedAcquirer(settings, client=client)
        first = await acquirer.acquire(VehicleClass.BUS)
        second = await acquirer.acquire(VehicleClass.BUS)

    assert first.provenance == Provenance.MOCK
    assert len(first.vehicles) > 0
    assert _layout(first) == _layout(second)


def test_mock_snapshot_is_seeded_and_inside_bbox(make_settings):
    bbox = make_settings().service_area
    now = datetime(2026, 2, 19, 12, 0, tzinfo=timezone.utc)
    a = mock_snapshot(VehicleClass.TRAIN, bbox, seed=1, now=now)
    b = mock_snapshot(VehicleClass.TRAIN, bbox, seed=1, now=now)
    c = mock_snapshot(VehicleClass.TRAIN, bbox, seed=2, now=now)
    assert a == b
    assert a != c
    assert all(bbox.contains(v.latitude, v.longitude) for v in a.vehicles)
    assert len({v.id for v in a.vehicles}) == len(a.vehicles)


# ── Fallback policy ──────────────────────────────────────────────────


def test_degrade_serves_recent_snapshot_as_cached():
    last = _snapshot(VehicleClass.BUS, Provenance.LIVE, n=3)
    result = degrade(VehicleClass.BUS, last, last_good_age=60, grace_window=150)
    assert result.provenance == Provenance.CACHED
    assert result.vehicles == last.vehicles
    assert last.provenance == Provenance.LIVE  # original untouched


def test_degrade_expired_snapshot_becomes_error():
    last = _snapshot(VehicleClass.BUS, Provenance.LIVE, n=3)
    result = degrade(VehicleClass.BUS, last, last_good_age=151, grace_window=150)
    assert result.provenance == Provenance.ERROR
    assert result.vehicles == ()


def test_degrade_without_history_is_error():
    result = degrade(VehicleClass.TRAIN, None, None, grace_window=150)
    assert result.provenance == Provenance.ERROR
    assert result.vehicle_class == VehicleClass.TRAIN
    assert result.captured_at <= datetime.now(timezone.utc) + timedelta(seconds=1)


@pytest.mark.parametrize(
    "bus, train, expected",
    [
        (Provenance.LIVE, Provenance.LIVE, Provenance.LIVE),
        (Provenance.LIVE, Provenance.CACHED, Provenance.PARTIAL),
        (Provenance.ERROR, Provenance.LIVE, Provenance.PARTIAL),
        (Provenance.CACHED, Provenance.ERROR, Provenance.ERROR),
        (Provenance.ERROR, Provenance.ERROR, Provenance.ERROR),
    ],
)
def test_combine_provenance(bus, train, expected):
    assert (
        combine_provenance(
            _snapshot(VehicleClass.BUS, bus), _snapshot(VehicleClass.TRAIN, train)
        )
        == expected
    )


def test_combine_provenance_mock_mode_wins():
    bus = _snapshot(VehicleClass.BUS, Provenance.MOCK)
    train = _snapshot(VehicleClass.TRAIN, Provenance.ERROR)
    assert combine_provenance(bus, train, mock_mode=True) == Provenance.MOCK
