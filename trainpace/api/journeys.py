"""Journey session REST API endpoints."""

import logging

from fastapi import APIRouter, HTTPException

from trainpace.core.geo import LatLon
from trainpace.core.journey_session import JourneyRequest
from trainpace.core.pacing_controller import LocationSample
from trainpace.core.tfl_client import line_id_for_name
from trainpace.schemas.journey import JourneyCreate, JourneyState, LocationIn, PlatformWalkOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/journeys", tags=["journeys"])

# Will be set by main.py
manager = None


def _get_session(session_id: str):
    if manager is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    session = manager.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Journey not found")
    return session


def _line_ids(body: JourneyCreate) -> list[str] | None:
    if body.line_ids is not None:
        return body.line_ids
    if body.line_names is None:
        return None
    line_ids = []
    for name in body.line_names:
        line_id = line_id_for_name(name)
        if line_id:
            line_ids.append(line_id)
        else:
            logger.warning("Unknown line name %r ignored", name)
    return line_ids


@router.post("", response_model=JourneyState, status_code=201)
async def create_journey(body: JourneyCreate):
    """Resolve the station, pick the best catchable train and start tracking."""
    if manager is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    request = JourneyRequest(
        station_name=body.station_name,
        walk_to_station_seconds=body.walk_to_station_seconds,
        transfer_seconds=body.transfer_seconds,
        line_ids=_line_ids(body),
        origin=LatLon(body.origin.lat, body.origin.lon) if body.origin else None,
        platform_seconds=body.platform_seconds,
    )
    session = await manager.create(request)
    if session is None:
        raise HTTPException(status_code=404, detail="Station not found")
    return session.snapshot()


@router.get("/{session_id}", response_model=JourneyState)
async def get_journey(session_id: str):
    return _get_session(session_id).snapshot()


@router.post("/{session_id}/location", response_model=JourneyState)
async def post_location(session_id: str, body: LocationIn):
    """Feed one position/speed sample to the tracker and the pacer."""
    session = _get_session(session_id)
    session.update_location(LocationSample(
        position=LatLon(body.lat, body.lon),
        speed=body.speed,
        timestamp=body.timestamp,
    ))
    return session.snapshot()


@router.post("/{session_id}/platform", response_model=PlatformWalkOut)
async def reached_platform(session_id: str):
    """Traveler reached the platform; record the entrance-to-platform walk."""
    session = _get_session(session_id)
    seconds = session.mark_on_platform()
    return PlatformWalkOut(station=session.station.name, seconds=seconds)


@router.delete("/{session_id}", status_code=204)
async def delete_journey(session_id: str):
    if manager is None or not manager.close(session_id):
        raise HTTPException(status_code=404, detail="Journey not found")
