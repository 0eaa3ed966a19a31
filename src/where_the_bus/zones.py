"""In-memory geofence zone store.

Zones are owned here and replaced wholesale; readers only ever see an
immutable snapshot.
"""

import json
import logging
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from where_the_bus.exceptions import ConfigError
from where_the_bus.models import GeofenceZone

logger = logging.getLogger(__name__)

_zone_list = TypeAdapter(list[GeofenceZone])


def _check_unique(zones: list[GeofenceZone]):
    ids = [z.id for z in zones]
    if len(ids) != len(set(ids)):
        raise ValueError("zone ids must be unique")


class ZoneStore:
    def __init__(self, zones: list[GeofenceZone] | None = None):
        zones = list(zones or ())
        _check_unique(zones)
        self._zones: tuple[GeofenceZone, ...] = tuple(zones)
        self.version = 0

    def snapshot(self) -> tuple[GeofenceZone, ...]:
        return self._zones

    def replace(self, zones: list[GeofenceZone]):
        _check_unique(zones)
        self._zones = tuple(zones)
        self.version += 1
        logger.info("Zone store now holds %d zones (v%d)", len(zones), self.version)

    def active(self) -> list[GeofenceZone]:
        return [z for z in self._zones if z.active]


def load_zones(path: str | Path) -> list[GeofenceZone]:
    """Read a JSON array of zone objects."""
    try:
        raw = Path(path).read_text()
    except OSError as exc:
        raise ConfigError("GEOFENCE_ZONES_PATH", f"cannot read {path}: {exc}")
    try:
        zones = _zone_list.validate_python(json.loads(raw))
        _check_unique(zones)
    except (ValueError, ValidationError) as exc:
        raise ConfigError("GEOFENCE_ZONES_PATH", f"invalid zones in {path}: {exc}")
    return zones
