"""Line status REST API endpoints."""

from fastapi import APIRouter, HTTPException

from trainpace.schemas.arrival import LineStatusInfo, LineStatusOut

router = APIRouter(prefix="/api/lines", tags=["lines"])

# Will be set by main.py
client = None


@router.get("/{line_id}/status", response_model=LineStatusOut)
async def get_line_status(line_id: str):
    """Current TfL service status for a line."""
    if client is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    status = await client.fetch_line_status(line_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Line status unavailable")
    return LineStatusOut(
        line_id=status.line_id,
        name=status.name,
        statuses=[
            LineStatusInfo(severity=s.severity, description=s.description, reason=s.reason)
            for s in status.statuses
        ],
    )
