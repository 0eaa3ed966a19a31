# src/where_the_bus/models.py
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class VehicleClass(str, Enum):
    BUS = "bus"
    TRAIN = "train"


class Provenance(str, Enum):
    LIVE = "live"
    CACHED = "cached"
    MOCK = "mock"
    PARTIAL = "partial"
    ERROR = "error"


class VehiclePosition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique vehicle identifier")
    vehicle_class: VehicleClass = Field(..., description="bus or train")
    route_id: str = Field("", description="Route the vehicle is serving")
    latitude: float
    longitude: float
    heading: float | None = Field(None, description="Heading in degrees (0-360)")
    speed: float | None = Field(None, description="Speed in m/s")
    observed_at: datetime = Field(..., description="Position timestamp (UTC)")


class FeedSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    vehicle_class: VehicleClass
    vehicles: tuple[VehiclePosition, ...] = ()
    captured_at: datetime
    provenance: Provenance

    @property
    def degraded(self) -> bool:
        return self.provenance in (Provenance.CACHED, Provenance.ERROR)


class Priority(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    Priority.URGENT: 0,
    Priority.HIGH: 1,
    Priority.NORMAL: 2,
    Priority.LOW: 3,
}


class GeofenceZone(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    latitude: float = Field(..., ge=-90, le=90, description="Zone center latitude")
    longitude: float = Field(
        ..., ge=-180, le=180, description="Zone center longitude"
    )
    radius_m: float = Field(..., gt=0, description="Zone radius in meters")
    priority: Priority = Priority.NORMAL
    message: str = Field("", description="Alert text shown when triggered")
    active: bool = True


# ── API response models ──────────────────────────────────────────────


class VehiclesResponse(BaseModel):
    buses: list[VehiclePosition]
    trains: list[VehiclePosition]
    timestamp: datetime = Field(..., description="When this response was assembled")
    source: Provenance = Field(
        ...,
        description="live, partial, mock, cached or error. Anything but live/mock "
        "means the data may be delayed.",
    )


class GeofenceResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    alerts: list[GeofenceZone] = Field(
        ..., description="Triggered zones, most urgent first"
    )
    triggered_zone_ids: list[str] = Field(..., alias="triggeredZoneIds")


class HealthResponse(BaseModel):
    status: str = "ok"
    mock_mode: bool
    deployment_context: str
    feeds: dict[str, str] = Field(
        default_factory=dict, description="Provenance of each cached feed"
    )
