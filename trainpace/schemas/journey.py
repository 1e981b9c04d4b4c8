import datetime

from pydantic import BaseModel, Field


class Position(BaseModel):
    lat: float
    lon: float


class JourneyCreate(BaseModel):
    station_name: str
    walk_to_station_seconds: float = Field(ge=0)
    transfer_seconds: list[float] = []
    line_ids: list[str] | None = None
    line_names: list[str] | None = None
    origin: Position | None = None
    platform_seconds: float | None = Field(default=None, ge=0)


class LocationIn(BaseModel):
    lat: float
    lon: float
    speed: float | None = None  # m/s
    timestamp: datetime.datetime | None = None


class CatchInfoOut(BaseModel):
    line_id: str
    destination: str
    platform: str = ""
    expected_arrival: datetime.datetime
    time_left_to_catch: float
    status: str


class ProgressOut(BaseModel):
    phase: str
    completion_fraction: float
    overall_fraction: float
    can_catch: bool
    delta: float
    time_left_to_catch: float
    uncertainty: float
    status: str


class TargetOut(BaseModel):
    line_id: str
    destination: str
    platform: str = ""
    expected_arrival: datetime.datetime


class JourneyState(BaseModel):
    session_id: str
    station: dict
    target: TargetOut | None = None
    progress: ProgressOut | None = None
    pacing_active: bool = False
    pacing_direction: str | None = None
    average_speed: float = 0.0
    feedback: str | None = None
    trains: list[CatchInfoOut] = []
    closed: bool = False


class PlatformWalkOut(BaseModel):
    station: str
    seconds: float | None
