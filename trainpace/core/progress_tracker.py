"""Journey phase tracking against a JourneyPlan.

Two inputs drive the tracker. A periodic tick maps elapsed wall-clock time
onto the plan's leg boundaries. Position samples measure the walk to the
station and force the StationToPlatform phase once the traveler is within
the proximity radius of the entrance. Phases never move backwards; the
tracker stops itself when the journey is finished.
"""

import datetime
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from trainpace.core.catch_classifier import CatchStatus, classify, time_left_to_catch
from trainpace.core.geo import LatLon, distance_m
from trainpace.core.journey_plan import (
    FINISHED,
    STATION_TO_PLATFORM,
    WALK_TO_STATION,
    JourneyPlan,
    ProgressPhase,
    now_utc,
)
from trainpace.core.periodic import PeriodicTask

logger = logging.getLogger(__name__)

DEFAULT_TICK_HZ = 60.0
DEFAULT_UNCERTAINTY_SECONDS = 20.0
# Distance (m) from the station entrance that counts as arrived
STATION_PROXIMITY_M = 10.0


@dataclass
class ProgressUpdate:
    phase: ProgressPhase
    completion_fraction: float  # within the current phase, 0.0-1.0
    overall_fraction: float  # across the whole journey, 0.0-1.0
    can_catch: bool
    delta: float  # seconds until the target train arrives
    time_left_to_catch: float
    uncertainty: float
    status: CatchStatus
    elapsed_seconds: float


class ProgressObserver(Protocol):
    def on_progress(self, update: ProgressUpdate) -> None: ...

    def on_phase_change(self, phase: ProgressPhase) -> None: ...

    def on_station_arrival(self, now: datetime.datetime) -> None: ...


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class ProgressTracker:
    """Phase state machine for one JourneyPlan. One instance per plan."""

    def __init__(
        self,
        plan: JourneyPlan,
        observer: ProgressObserver | None = None,
        uncertainty_seconds: float = DEFAULT_UNCERTAINTY_SECONDS,
        proximity_m: float = STATION_PROXIMITY_M,
        tick_interval: float | None = 1.0 / DEFAULT_TICK_HZ,
        clock: Callable[[], datetime.datetime] = now_utc,
    ) -> None:
        self.plan = plan
        self.observer = observer
        self.uncertainty_seconds = uncertainty_seconds
        self.proximity_m = proximity_m
        self.clock = clock

        self.start_time: datetime.datetime | None = None
        self.phase: ProgressPhase = WALK_TO_STATION
        self.completion_fraction = 0.0
        self.running = False

        self.station_reached = False
        self._missed = False
        self._last_notified_phase: ProgressPhase | None = None
        # None means ticks are driven externally via tick()
        self._ticker = PeriodicTask(tick_interval, self.tick, name="progress-tick") if tick_interval else None

    def start(self, now: datetime.datetime | None = None) -> None:
        if self.running:
            return
        if self.start_time is not None:
            raise RuntimeError("ProgressTracker cannot be restarted; create one per plan")
        self.start_time = now or self.clock()
        self.phase = WALK_TO_STATION
        self.completion_fraction = 0.0
        self.running = True
        if self._ticker:
            self._ticker.start()
        logger.debug(
            "Tracking started: total %.1fs, target %s",
            self.plan.total_seconds, self.plan.target_arrival.isoformat(),
        )

    def stop(self) -> None:
        if not self.running:
            return
        self.running = False
        if self._ticker:
            self._ticker.stop()
        logger.debug("Tracking stopped in phase %s", self.phase.label)

    def carry_over(self, previous: "ProgressTracker") -> None:
        """Continue from another tracker's position without re-announcing its phase."""
        self.phase = max(self.phase, previous.phase)
        self.completion_fraction = previous.completion_fraction
        self._last_notified_phase = previous._last_notified_phase
        self.station_reached = previous.station_reached

    def elapsed_seconds(self, now: datetime.datetime | None = None) -> float:
        if self.start_time is None:
            return 0.0
        now = now or self.clock()
        return max(0.0, (now - self.start_time).total_seconds())

    def tick(self, now: datetime.datetime | None = None) -> ProgressUpdate | None:
        """Time-driven update. Returns None once the tracker is stopped."""
        if not self.running:
            return None
        now = now or self.clock()
        elapsed = self.elapsed_seconds(now)

        located, fraction = self.plan.locate(elapsed)
        if located < self.phase:
            located, fraction = self.phase, self.completion_fraction
        self.phase = located
        self.completion_fraction = _clamp(fraction)

        total = self.plan.total_seconds
        overall = _clamp(elapsed / total) if total > 0 else 1.0
        update = self._build_update(now, elapsed, overall)
        self._emit(update)

        if self.phase == FINISHED:
            self.stop()
        return update

    def update_location(
        self, position: LatLon, now: datetime.datetime | None = None,
    ) -> ProgressUpdate | None:
        """Location-driven update for the walk to the station.

        Ignored when the plan has no station coordinate. Once the clock has
        moved the tracker past the walk, positions only detect reaching the
        entrance and produce no progress update.
        """
        if not self.running:
            return None
        station = self.plan.station_location
        if station is None:
            return None
        now = now or self.clock()

        distance_left = distance_m(position, station)
        if self.phase != WALK_TO_STATION:
            if not self.station_reached and distance_left < self.proximity_m:
                self._notify_station_arrival(now)
            return None

        total_distance = self.plan.total_distance_m
        if total_distance:
            walk_fraction = _clamp(1 - distance_left / total_distance)
        else:
            walk_fraction = 0.0

        if distance_left < self.proximity_m:
            self._arrive_at_station(now)
            walk_fraction = 0.0
        else:
            self.completion_fraction = walk_fraction

        total = self.plan.total_seconds
        if self.phase == WALK_TO_STATION:
            overall = walk_fraction * self.plan.walk_to_station_seconds / total if total > 0 else 0.0
        else:
            overall = _clamp(self.plan.walk_to_station_seconds / total) if total > 0 else 1.0
        update = self._build_update(now, self.elapsed_seconds(now), _clamp(overall))
        self._emit(update)
        return update

    def _arrive_at_station(self, now: datetime.datetime) -> None:
        # Re-anchor so elapsed time sits at the platform boundary; later ticks
        # then continue from there.
        boundary = self.plan.phase_start_seconds(STATION_TO_PLATFORM)
        if self.elapsed_seconds(now) < boundary:
            self.start_time = now - datetime.timedelta(seconds=boundary)
        self.phase = STATION_TO_PLATFORM
        self.completion_fraction = 0.0
        logger.info("Arrived at station entrance, switching to %s", self.phase.label)
        self._notify_station_arrival(now)

    def _notify_station_arrival(self, now: datetime.datetime) -> None:
        self.station_reached = True
        if self.observer is not None:
            self.observer.on_station_arrival(now)

    def _build_update(
        self, now: datetime.datetime, elapsed: float, overall: float,
    ) -> ProgressUpdate:
        time_left = time_left_to_catch(self.plan, self.plan.target_arrival, now, elapsed)
        status = classify(time_left, self.uncertainty_seconds)
        if self._missed:
            status = CatchStatus.MISSED
        elif status == CatchStatus.MISSED:
            self._missed = True
            logger.info("Target train at %s is now missed", self.plan.target_arrival.isoformat())

        return ProgressUpdate(
            phase=self.phase,
            completion_fraction=self.completion_fraction,
            overall_fraction=overall,
            can_catch=status == CatchStatus.SAFE,
            delta=(self.plan.target_arrival - now).total_seconds(),
            time_left_to_catch=time_left,
            uncertainty=self.uncertainty_seconds,
            status=status,
            elapsed_seconds=elapsed,
        )

    def _emit(self, update: ProgressUpdate) -> None:
        if self.observer is None:
            return
        self.observer.on_progress(update)
        if update.phase != self._last_notified_phase:
            self._last_notified_phase = update.phase
            self.observer.on_phase_change(update.phase)
