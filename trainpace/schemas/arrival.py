import datetime

from pydantic import BaseModel


class StationInfo(BaseModel):
    stop_id: str
    name: str
    lat: float | None = None
    lon: float | None = None


class ArrivalInfo(BaseModel):
    id: str = ""
    line_id: str
    line_name: str = ""
    platform_name: str = ""
    destination_name: str = ""
    expected_arrival: datetime.datetime
    time_to_station: float = 0.0


class StopArrivals(BaseModel):
    stop_id: str
    arrivals: list[ArrivalInfo]


class LineStatusInfo(BaseModel):
    severity: int
    description: str
    reason: str | None = None


class LineStatusOut(BaseModel):
    line_id: str
    name: str
    statuses: list[LineStatusInfo] = []
