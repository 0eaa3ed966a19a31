# src/where_the_bus/routes.py
import logging

from fastapi import APIRouter, Query, Request

from where_the_bus.models import (
    FeedSnapshot,
    GeofenceResponse,
    GeofenceZone,
    VehicleClass,
    VehiclesResponse,
)
from where_the_bus.service import TransitService

log = logging.getLogger(__name__)

router = APIRouter()


def _service(request: Request) -> TransitService:
    return request.app.state.service


@router.get(
    "/vehicles",
    response_model=VehiclesResponse,
    summary="Current vehicle positions",
    description="Returns the latest bus and train positions. Upstream trouble never "
    "fails the request; check `source` to know whether the data may be delayed.",
    tags=["vehicles"],
)
async def get_vehicles(request: Request):
    return await _service(request).vehicles()


@router.get(
    "/vehicles/{vehicle_class}",
    response_model=FeedSnapshot,
    summary="Positions for one feed",
    description="Returns the cached snapshot for a single feed (bus or train) "
    "with its own provenance tag.",
    tags=["vehicles"],
)
async def get_feed(request: Request, vehicle_class: VehicleClass):
    return await _service(request).feed(vehicle_class)


@router.get(
    "/geofence/check",
    response_model=GeofenceResponse,
    summary="Alert zones containing a point",
    description="Returns the active zones whose radius contains the point, most "
    "urgent first, then nearest first. Results are cached per ~bucket-sized grid "
    "cell for a short time.",
    tags=["geofence"],
)
def check_geofence(
    request: Request,
    lat: float = Query(..., ge=-90, le=90, description="Latitude"),
    lng: float = Query(..., ge=-180, le=180, description="Longitude"),
):
    return _service(request).check_geofence(lat, lng)


@router.get(
    "/zones",
    response_model=list[GeofenceZone],
    summary="Active alert zones",
    tags=["geofence"],
)
def get_zones(request: Request):
    return _service(request).zones.active()
