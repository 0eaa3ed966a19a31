"""Turn raw feed payloads into normalized :class:`VehiclePosition` lists.

Envelope problems are fatal for the cycle and raise :class:`DecodeError`.
Individual bad records are skipped, and positions outside the service area
are dropped as sensor noise.
"""

import json
import logging
from datetime import datetime, timezone

from google.protobuf.message import DecodeError as ProtobufDecodeError
from google.transit import gtfs_realtime_pb2
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from where_the_bus.config import BoundingBox
from where_the_bus.exceptions import DecodeError, DecodeErrorKind
from where_the_bus.models import VehicleClass, VehiclePosition

logger = logging.getLogger(__name__)


def _to_utc(value) -> datetime | None:
    """Accept epoch seconds/milliseconds, ISO strings or datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) or (isinstance(value, str) and value.isdigit()):
        ts = float(value)
        if ts <= 0:
            return None
        # Values above 1e11 are milliseconds.
        if ts > 1e11:
            ts /= 1000.0
        try:
            return datetime.fromtimestamp(ts, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    return None


# ── Bus feed (JSON) ──────────────────────────────────────────────────


class BusRecord(BaseModel):
    id: str = Field(validation_alias=AliasChoices("id", "VEHICLE", "vehicle_id"))
    route: str = Field(
        "", validation_alias=AliasChoices("route", "ROUTE", "route_id")
    )
    lat: float = Field(validation_alias=AliasChoices("lat", "LATITUDE", "latitude"))
    lon: float = Field(
        validation_alias=AliasChoices("lon", "LONGITUDE", "longitude", "lng")
    )
    timestamp: datetime | None = Field(
        None, validation_alias=AliasChoices("timestamp", "MSGTIME", "observed_at")
    )
    heading: float | None = Field(
        None, validation_alias=AliasChoices("heading", "bearing", "BEARING")
    )
    speed: float | None = Field(None, validation_alias=AliasChoices("speed", "SPEED"))

    @field_validator("id", "route", mode="before")
    @classmethod
    def stringify(cls, v):
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("id")
    @classmethod
    def not_blank(cls, v):
        if not v:
            raise ValueError("vehicle id is required")
        return v

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_timestamp(cls, v):
        """Malformed timestamps become None rather than failing the record."""
        return _to_utc(v)


def decode_bus_feed(
    raw: bytes | str, bbox: BoundingBox, received_at: datetime | None = None
) -> list[VehiclePosition]:
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as exc:
        raise DecodeError(DecodeErrorKind.MALFORMED, f"bus feed is not JSON: {exc}")

    if not isinstance(data, list):
        raise DecodeError(
            DecodeErrorKind.SCHEMA_VIOLATION,
            f"bus feed top level is {type(data).__name__}, expected array",
        )

    fallback_ts = received_at or datetime.now(timezone.utc)
    positions = []
    skipped = 0
    for raw_item in data:
        try:
            item = BusRecord.model_validate(raw_item)
        except ValidationError:
            skipped += 1
            continue
        positions.append(
            VehiclePosition(
                id=item.id,
                vehicle_class=VehicleClass.BUS,
                route_id=item.route,
                latitude=item.lat,
                longitude=item.lon,
                heading=_clean_heading(item.heading),
                speed=item.speed,
                observed_at=item.timestamp or fallback_ts,
            )
        )
    if skipped:
        logger.debug("Skipped %d malformed bus records", skipped)
    return _finalize(positions, bbox)


# ── Train feed (GTFS-realtime protobuf) ──────────────────────────────


def decode_train_feed(
    raw: bytes, bbox: BoundingBox, received_at: datetime | None = None
) -> list[VehiclePosition]:
    feed = gtfs_realtime_pb2.FeedMessage()
    try:
        feed.ParseFromString(raw)
    except (ProtobufDecodeError, TypeError) as exc:
        raise DecodeError(DecodeErrorKind.MALFORMED, f"train feed: {exc}")
    if not feed.HasField("header") or not feed.header.gtfs_realtime_version:
        raise DecodeError(
            DecodeErrorKind.MALFORMED, "train feed header has no gtfs_realtime_version"
        )

    header_ts = _to_utc(feed.header.timestamp) if feed.header.timestamp else None
    fallback_ts = header_ts or received_at or datetime.now(timezone.utc)

    positions = []
    for entity in feed.entity:
        if not entity.HasField("vehicle"):
            continue
        vp = entity.vehicle
        if not vp.HasField("position"):
            continue
        vehicle_id = vp.vehicle.id or vp.vehicle.label or entity.id
        if not vehicle_id:
            continue
        pos = vp.position
        observed_at = _to_utc(vp.timestamp) if vp.timestamp else None
        positions.append(
            VehiclePosition(
                id=vehicle_id,
                vehicle_class=VehicleClass.TRAIN,
                route_id=vp.trip.route_id,
                latitude=pos.latitude,
                longitude=pos.longitude,
                heading=_clean_heading(pos.bearing) if pos.HasField("bearing") else None,
                speed=pos.speed if pos.HasField("speed") else None,
                observed_at=observed_at or fallback_ts,
            )
        )
    return _finalize(positions, bbox)


# ── Shared ───────────────────────────────────────────────────────────


def _clean_heading(value: float | None) -> float | None:
    if value is None or not 0 <= value <= 360:
        return None
    return float(value)


def _finalize(
    positions: list[VehiclePosition], bbox: BoundingBox
) -> list[VehiclePosition]:
    """Drop out-of-area positions and collapse duplicate ids to the newest."""
    newest: dict[str, VehiclePosition] = {}
    dropped = 0
    for p in positions:
        if not bbox.contains(p.latitude, p.longitude):
            dropped += 1
            continue
        current = newest.get(p.id)
        if current is None or p.observed_at > current.observed_at:
            newest[p.id] = p
    if dropped:
        logger.debug("Dropped %d positions outside the service area", dropped)
    return list(newest.values())


def decode(
    raw: bytes,
    feed_type: VehicleClass,
    bbox: BoundingBox,
    received_at: datetime | None = None,
) -> list[VehiclePosition]:
    if feed_type == VehicleClass.BUS:
        return decode_bus_feed(raw, bbox, received_at)
    if feed_type == VehicleClass.TRAIN:
        return decode_train_feed(raw, bbox, received_at)
    raise ValueError(f"Unknown feed type: {feed_type}")
