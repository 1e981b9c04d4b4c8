"""Immutable journey description and the ordered progress phases."""

import datetime
import enum
from dataclasses import dataclass, field

from trainpace.core.geo import LatLon, distance_m


def now_utc() -> datetime.datetime:
    """Current aware UTC time. Extracted for test patching."""
    return datetime.datetime.now(datetime.timezone.utc)


def as_utc(value: datetime.datetime) -> datetime.datetime:
    """Aware UTC datetime. Naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


class PhaseKind(enum.IntEnum):
    WALK_TO_STATION = 0
    STATION_TO_PLATFORM = 1
    TRANSFER_WALK = 2
    FINISHED = 3


@dataclass(frozen=True, order=True)
class ProgressPhase:
    """A journey phase; instances compare in traversal order."""

    kind: PhaseKind
    index: int = 0  # transfer leg index, only meaningful for TRANSFER_WALK

    @classmethod
    def transfer(cls, index: int) -> "ProgressPhase":
        return cls(PhaseKind.TRANSFER_WALK, index)

    @property
    def label(self) -> str:
        if self.kind == PhaseKind.TRANSFER_WALK:
            return f"transfer_walk_{self.index}"
        return self.kind.name.lower()


WALK_TO_STATION = ProgressPhase(PhaseKind.WALK_TO_STATION)
STATION_TO_PLATFORM = ProgressPhase(PhaseKind.STATION_TO_PLATFORM)
FINISHED = ProgressPhase(PhaseKind.FINISHED)


@dataclass(frozen=True)
class JourneyPlan:
    """Leg durations (seconds) for reaching one target train.

    Negative durations are clamped to zero; total_seconds is always derived.
    """

    walk_to_station_seconds: float
    station_to_platform_seconds: float
    target_arrival: datetime.datetime
    transfer_seconds: tuple[float, ...] = field(default_factory=tuple)
    origin_location: LatLon | None = None
    station_location: LatLon | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "walk_to_station_seconds", max(0.0, float(self.walk_to_station_seconds)))
        object.__setattr__(self, "station_to_platform_seconds", max(0.0, float(self.station_to_platform_seconds)))
        object.__setattr__(
            self, "transfer_seconds", tuple(max(0.0, float(t)) for t in self.transfer_seconds),
        )

    @property
    def total_seconds(self) -> float:
        return self.walk_to_station_seconds + self.station_to_platform_seconds + sum(self.transfer_seconds)

    @property
    def total_distance_m(self) -> float | None:
        """Straight-line origin to station distance, when both are known."""
        if self.origin_location is None or self.station_location is None:
            return None
        return distance_m(self.origin_location, self.station_location)

    def locate(self, elapsed_seconds: float) -> tuple[ProgressPhase, float]:
        """Phase and in-phase fraction at the given elapsed time.

        Boundaries are checked walk, platform, then each transfer in order.
        Zero-length legs are never selected.
        """
        elapsed = max(0.0, elapsed_seconds)
        boundary = self.walk_to_station_seconds
        if elapsed < boundary:
            return WALK_TO_STATION, elapsed / self.walk_to_station_seconds

        start = boundary
        boundary += self.station_to_platform_seconds
        if elapsed < boundary:
            return STATION_TO_PLATFORM, (elapsed - start) / self.station_to_platform_seconds

        for i, leg in enumerate(self.transfer_seconds):
            start = boundary
            boundary += leg
            if elapsed < boundary:
                return ProgressPhase.transfer(i), (elapsed - start) / leg

        return FINISHED, 1.0

    def phase_start_seconds(self, phase: ProgressPhase) -> float:
        """Elapsed seconds at which the given phase begins."""
        if phase.kind == PhaseKind.WALK_TO_STATION:
            return 0.0
        if phase.kind == PhaseKind.STATION_TO_PLATFORM:
            return self.walk_to_station_seconds
        if phase.kind == PhaseKind.TRANSFER_WALK:
            return (self.walk_to_station_seconds + self.station_to_platform_seconds
                    + sum(self.transfer_seconds[:phase.index]))
        return self.total_seconds
