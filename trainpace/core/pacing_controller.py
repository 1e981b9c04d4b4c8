"""Speed pacing toward a target arrival.

Each accepted location sample compares the observed walking speed with the
speed needed to cover the remaining distance in the remaining time. When the
two differ by at least the deviation threshold a repeating cue starts: a fast
cue when the traveler is too slow, a slow cue when they are too fast. The cue
stops once the deviation falls back under the threshold.
"""

import datetime
import enum
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from trainpace.core.geo import LatLon, distance_m
from trainpace.core.periodic import PeriodicTask

logger = logging.getLogger(__name__)

# Minimum speed used for ratios (m/s) - prevents division by zero
MIN_SPEED_MPS = 0.5
# Trigger pacing when |1 - observed/target| reaches this fraction
DEVIATION_THRESHOLD = 0.1
# Samples closer than this (m) to the last accepted one are GPS jitter
MIN_LOCATION_DELTA_M = 10.0
# Cue intervals (s): fast when too slow, slow when too fast
FAST_CUE_INTERVAL = 0.5
SLOW_CUE_INTERVAL = 1.0
# Cue rate limits (Hz)
MIN_CUE_HZ = 0.5
MAX_CUE_HZ = 2.0


class CueDirection(str, enum.Enum):
    TOO_SLOW = "too_slow"
    TOO_FAST = "too_fast"


@dataclass
class LocationSample:
    position: LatLon
    speed: float | None = None  # device-reported m/s; None or negative if unknown
    timestamp: datetime.datetime | None = None


@dataclass
class PacingSample:
    observed_speed: float
    target_speed: float
    distance_remaining: float
    time_remaining: float

    @property
    def deviation_ratio(self) -> float:
        return self.observed_speed / self.target_speed if self.target_speed > 0 else float("inf")

    @property
    def deviation(self) -> float:
        return abs(1.0 - self.deviation_ratio)

    @property
    def projected_arrival_seconds(self) -> float:
        return self.distance_remaining / self.observed_speed


class PacingObserver(Protocol):
    def on_pacing(self, observed_speed: float, target_speed: float) -> None: ...

    def on_projected_arrival(self, seconds: float) -> None: ...

    def on_cue(self) -> None: ...


class SpeedProfile:
    """Rolling mean of recent observed walking speeds."""

    def __init__(self, size: int = 100) -> None:
        self._history: deque[float] = deque(maxlen=size)

    def add(self, speed: float) -> None:
        self._history.append(speed)

    @property
    def average_speed(self) -> float:
        if not self._history:
            return 0.0
        return sum(self._history) / len(self._history)

    def __len__(self) -> int:
        return len(self._history)


class PacingController:
    """Hysteresis pacing with an adaptive-interval repeating cue."""

    def __init__(
        self,
        observer: PacingObserver | None = None,
        deviation_threshold: float = DEVIATION_THRESHOLD,
        min_speed: float = MIN_SPEED_MPS,
        min_location_delta_m: float = MIN_LOCATION_DELTA_M,
        fast_cue_interval: float = FAST_CUE_INTERVAL,
        slow_cue_interval: float = SLOW_CUE_INTERVAL,
        min_cue_hz: float = MIN_CUE_HZ,
        max_cue_hz: float = MAX_CUE_HZ,
        history_size: int = 100,
        timer_factory: Callable[..., PeriodicTask] = PeriodicTask,
    ) -> None:
        self.observer = observer
        self.deviation_threshold = deviation_threshold
        self.min_speed = min_speed
        self.min_location_delta_m = min_location_delta_m
        shortest, longest = 1.0 / max_cue_hz, 1.0 / min_cue_hz
        self.fast_cue_interval = min(longest, max(shortest, fast_cue_interval))
        self.slow_cue_interval = min(longest, max(shortest, slow_cue_interval))
        self.speed_profile = SpeedProfile(history_size)
        self._timer_factory = timer_factory

        self.pacing_active = False
        self.direction: CueDirection | None = None
        self.last_sample: PacingSample | None = None
        self._last_location: LocationSample | None = None
        self._cue: PeriodicTask | None = None
        self._stopped = False

    @property
    def cue_interval(self) -> float | None:
        return self._cue.interval if self._cue else None

    def ingest(
        self,
        location: LocationSample,
        distance_remaining: float,
        time_remaining: float,
    ) -> PacingSample | None:
        """Evaluate one location sample. Returns None when it was discarded."""
        if self._stopped:
            return None

        previous = self._last_location
        if previous is not None:
            moved = distance_m(previous.position, location.position)
            if moved < self.min_location_delta_m:
                return None
        if time_remaining <= 0 or distance_remaining <= 0:
            return None
        observed = self._observed_speed(location, previous)
        self._last_location = location

        sample = PacingSample(
            observed_speed=observed,
            target_speed=distance_remaining / time_remaining,
            distance_remaining=distance_remaining,
            time_remaining=time_remaining,
        )
        self.last_sample = sample
        self.speed_profile.add(observed)

        if self.observer:
            self.observer.on_pacing(sample.observed_speed, sample.target_speed)
            self.observer.on_projected_arrival(sample.projected_arrival_seconds)

        logger.debug(
            "Speed %.2f m/s vs target %.2f m/s (deviation %.1f%%)",
            sample.observed_speed, sample.target_speed, sample.deviation * 100,
        )

        if sample.deviation >= self.deviation_threshold:
            direction = CueDirection.TOO_FAST if sample.deviation_ratio > 1 else CueDirection.TOO_SLOW
            if not self.pacing_active or direction != self.direction:
                self._start_cue(direction)
        elif self.pacing_active:
            logger.info("Speed back on target, stopping pacing cue")
            self._stop_cue()
        return sample

    def stop(self) -> None:
        """Stop pacing for good. No cue fires after this returns."""
        self._stopped = True
        self._stop_cue()

    def _observed_speed(self, location: LocationSample, previous: LocationSample | None) -> float:
        speed = location.speed
        if speed is None and previous is not None and location.timestamp and previous.timestamp:
            dt = (location.timestamp - previous.timestamp).total_seconds()
            if dt > 0:
                speed = distance_m(previous.position, location.position) / dt
        if speed is None or speed < self.min_speed:
            return self.min_speed
        return speed

    def _start_cue(self, direction: CueDirection) -> None:
        if self._cue:
            self._cue.stop()
        interval = self.fast_cue_interval if direction == CueDirection.TOO_SLOW else self.slow_cue_interval
        self.pacing_active = True
        self.direction = direction
        self._cue = self._timer_factory(interval, self._emit_cue, name="pacing-cue")
        self._cue.start()
        logger.info("Pacing started (%s), cue every %.2fs", direction.value, interval)

    def _stop_cue(self) -> None:
        if self._cue:
            self._cue.stop()
            self._cue = None
        self.pacing_active = False
        self.direction = None

    def _emit_cue(self) -> None:
        if self._stopped or not self.pacing_active:
            return
        if self.observer:
            self.observer.on_cue()
