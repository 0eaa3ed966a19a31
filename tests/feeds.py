"""Builders for upstream feed payloads used across tests."""

import json

from google.transit import gtfs_realtime_pb2


def train_feed_bytes(vehicles, header_ts=1771491800, version="2.0") -> bytes:
    """vehicles: list of dicts with id, lat, lon and optional route/ts/bearing."""
    feed = gtfs_realtime_pb2.FeedMessage()
    feed.header.gtfs_realtime_version = version
    feed.header.timestamp = header_ts
    for i, v in enumerate(vehicles):
        entity = feed.entity.add()
        entity.id = v.get("entity_id", f"e{i}")
        if v.get("no_position"):
            entity.vehicle.vehicle.id = v["id"]
            continue
        entity.vehicle.vehicle.id = v["id"]
        entity.vehicle.trip.route_id = v.get("route", "RED")
        entity.vehicle.position.latitude = v["lat"]
        entity.vehicle.position.longitude = v["lon"]
        if "bearing" in v:
            entity.vehicle.position.bearing = v["bearing"]
        if "ts" in v:
            entity.vehicle.timestamp = v["ts"]
    return feed.SerializeToString()


def bus_feed_bytes(records) -> bytes:
    return json.dumps(records).encode()


SAMPLE_BUS_RECORDS = [
    {
        "id": "2301",
        "route": "110",
        "lat": 33.7545,
        "lon": -84.4025,
        "timestamp": 1771491812,
        "heading": 135,
    },
    {
        "VEHICLE": 2417,
        "ROUTE": "39",
        "LATITUDE": "33.8012",
        "LONGITUDE": "-84.3880",
        "MSGTIME": "2026-02-19T09:03:11Z",
    },
]

SAMPLE_TRAIN_VEHICLES = [
    {"id": "T101", "lat": 33.7490, "lon": -84.3880, "route": "RED", "ts": 1771491810},
    {"id": "T202", "lat": 33.7710, "lon": -84.3870, "route": "GOLD", "bearing": 90.0},
]
