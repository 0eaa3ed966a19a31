import os
from dataclasses import dataclass

from where_the_bus.exceptions import ConfigError

DIRECT = "direct"
RELAYED = "relayed"
DEPLOYMENT_CONTEXTS = (DIRECT, RELAYED)


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float

    def contains(self, lat: float, lng: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng

    @property
    def center(self) -> tuple[float, float]:
        return (
            (self.min_lat + self.max_lat) / 2,
            (self.min_lng + self.max_lng) / 2,
        )

    @classmethod
    def parse(cls, raw: str) -> "BoundingBox":
        """Parse ``min_lat,min_lng,max_lat,max_lng``."""
        try:
            parts = [float(p) for p in raw.split(",")]
        except ValueError:
            raise ConfigError(
                "SERVICE_AREA_BBOX", f"SERVICE_AREA_BBOX is not numeric: {raw!r}"
            )
        if len(parts) != 4:
            raise ConfigError(
                "SERVICE_AREA_BBOX",
                f"SERVICE_AREA_BBOX needs 4 values, got {len(parts)}",
            )
        bbox = cls(*parts)
        if bbox.min_lat >= bbox.max_lat or bbox.min_lng >= bbox.max_lng:
            raise ConfigError(
                "SERVICE_AREA_BBOX", f"SERVICE_AREA_BBOX is empty: {raw!r}"
            )
        if not (-90 <= bbox.min_lat and bbox.max_lat <= 90):
            raise ConfigError(
                "SERVICE_AREA_BBOX", f"SERVICE_AREA_BBOX latitude out of range: {raw!r}"
            )
        return bbox


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


def _env_number(name: str, default: str, cast=float):
    raw = os.environ.get(name, default)
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError(name, f"{name} must be a number, got {raw!r}")
    if value < 0:
        raise ConfigError(name, f"{name} must not be negative, got {raw!r}")
    return value


class Settings:
    """Runtime configuration, read from the environment once at construction.

    Nothing here is validated for presence until :meth:`validate` runs;
    the app calls it during startup so a missing parameter stops the
    process before any request is served.
    """

    def __init__(self):
        self.deployment_context: str = os.environ.get(
            "DEPLOYMENT_CONTEXT", DIRECT
        ).lower()
        self.relay_url: str = os.environ.get("RELAY_URL", "")
        self.mock_mode: bool = _env_bool("MOCK_MODE", "false")
        self.mock_seed: int = _env_number("MOCK_SEED", "42", int)
        self.bus_feed_url: str = os.environ.get("BUS_FEED_URL", "")
        self.train_feed_url: str = os.environ.get("TRAIN_FEED_URL", "")
        self.service_area: BoundingBox = BoundingBox.parse(
            os.environ.get("SERVICE_AREA_BBOX", "33.40,-84.80,34.20,-83.90")
        )
        self.feed_ttl: float = _env_number("FEED_TTL_SECONDS", "30")
        self.fetch_timeout: float = _env_number("FETCH_TIMEOUT_SECONDS", "10")
        self.grace_factor: float = _env_number("GRACE_FACTOR", "5")
        self.failure_ttl: float = _env_number("FAILURE_TTL_SECONDS", "5")
        self.zones_path: str = os.environ.get("GEOFENCE_ZONES_PATH", "")
        self.geofence_bucket_meters: float = _env_number(
            "GEOFENCE_BUCKET_METERS", "75"
        )
        self.geofence_ttl: float = _env_number("GEOFENCE_TTL_SECONDS", "60")
        self.warm_cache: bool = _env_bool("WARM_CACHE", "true")
        self.log_level: str = os.environ.get("LOG_LEVEL", "INFO")

    @property
    def relayed(self) -> bool:
        return self.deployment_context == RELAYED

    @property
    def grace_window(self) -> float:
        return self.feed_ttl * self.grace_factor

    def validate(self) -> "Settings":
        if self.deployment_context not in DEPLOYMENT_CONTEXTS:
            raise ConfigError(
                "DEPLOYMENT_CONTEXT",
                f"DEPLOYMENT_CONTEXT must be one of {DEPLOYMENT_CONTEXTS}, "
                f"got {self.deployment_context!r}",
            )
        if self.relayed and not self.relay_url:
            raise ConfigError("RELAY_URL")
        if not self.mock_mode:
            if not self.bus_feed_url:
                raise ConfigError("BUS_FEED_URL")
            if not self.train_feed_url:
                raise ConfigError("TRAIN_FEED_URL")
        if self.feed_ttl <= 0:
            raise ConfigError("FEED_TTL_SECONDS", "FEED_TTL_SECONDS must be positive")
        if self.fetch_timeout <= 0:
            raise ConfigError(
                "FETCH_TIMEOUT_SECONDS", "FETCH_TIMEOUT_SECONDS must be positive"
            )
        if self.geofence_bucket_meters <= 0:
            raise ConfigError(
                "GEOFENCE_BUCKET_METERS", "GEOFENCE_BUCKET_METERS must be positive"
            )
        return self
