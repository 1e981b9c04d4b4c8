"""Station lookup REST API endpoints."""

from fastapi import APIRouter, HTTPException

from trainpace.schemas.arrival import StationInfo

router = APIRouter(prefix="/api/stations", tags=["stations"])

# Will be set by main.py
resolver = None


@router.get("/resolve", response_model=StationInfo)
async def resolve_station(name: str):
    """Resolve a free-text station name to its TfL stop point."""
    if resolver is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    entry = await resolver.resolve_entry(name)
    if entry is None:
        raise HTTPException(status_code=404, detail="Station not found")
    return StationInfo(stop_id=entry.stop_id, name=entry.name, lat=entry.lat, lon=entry.lon)


@router.get("/nearest", response_model=StationInfo)
async def nearest_station(lat: float, lon: float):
    """Closest known station to a coordinate."""
    if resolver is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    entry = resolver.index.nearest(lat, lon)
    if entry is None:
        raise HTTPException(status_code=404, detail="No stations indexed")
    return StationInfo(stop_id=entry.stop_id, name=entry.name, lat=entry.lat, lon=entry.lon)
