"""Stop arrivals REST API endpoints."""

from fastapi import APIRouter, Query

from trainpace.schemas.arrival import ArrivalInfo, StopArrivals

router = APIRouter(prefix="/api/stops", tags=["stops"])

# Will be set by main.py
catalog = None


@router.get("/{stop_id}/arrivals", response_model=StopArrivals)
async def get_arrivals(stop_id: str, line: list[str] | None = Query(default=None)):
    """Upcoming train arrivals at a stop, soonest first."""
    predictions = []
    if catalog:
        predictions = await catalog.fetch_arrivals(stop_id, line)
    predictions.sort(key=lambda p: p.expected_arrival)

    return StopArrivals(
        stop_id=stop_id,
        arrivals=[
            ArrivalInfo(
                id=p.id,
                line_id=p.line_id,
                line_name=p.line_name,
                platform_name=p.platform_name,
                destination_name=p.destination_name,
                expected_arrival=p.expected_arrival,
                time_to_station=p.time_to_station,
            )
            for p in predictions
        ],
    )
