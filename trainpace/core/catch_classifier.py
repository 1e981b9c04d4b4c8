"""Catchability verdicts for candidate trains."""

import datetime
import enum
import logging
from collections.abc import Iterable
from dataclasses import dataclass

from trainpace.core.journey_plan import JourneyPlan
from trainpace.core.tfl_client import ArrivalPrediction

logger = logging.getLogger(__name__)


class CatchStatus(str, enum.Enum):
    SAFE = "safe"
    TIGHT = "tight"
    MISSED = "missed"


def classify(time_left_seconds: float, uncertainty_seconds: float) -> CatchStatus:
    """Margin above the uncertainty band is safe; any negative margin is missed."""
    if time_left_seconds < 0:
        return CatchStatus.MISSED
    if time_left_seconds > uncertainty_seconds:
        return CatchStatus.SAFE
    return CatchStatus.TIGHT


def time_left_to_catch(
    plan: JourneyPlan,
    expected_arrival: datetime.datetime,
    now: datetime.datetime,
    elapsed_seconds: float = 0.0,
) -> float:
    """Seconds between the train's arrival and the projected end of the journey."""
    remaining = max(0.0, plan.total_seconds - elapsed_seconds)
    return (expected_arrival - now).total_seconds() - remaining


@dataclass
class CatchInfo:
    line_id: str
    destination: str
    expected_arrival: datetime.datetime
    time_left_to_catch_seconds: float
    status: CatchStatus
    platform: str = ""

    @property
    def can_catch(self) -> bool:
        return self.status != CatchStatus.MISSED


def evaluate(
    prediction: ArrivalPrediction,
    plan: JourneyPlan,
    now: datetime.datetime,
    uncertainty_seconds: float,
    elapsed_seconds: float = 0.0,
) -> CatchInfo:
    time_left = time_left_to_catch(plan, prediction.expected_arrival, now, elapsed_seconds)
    return CatchInfo(
        line_id=prediction.line_id,
        destination=prediction.destination_name,
        platform=prediction.platform_name,
        expected_arrival=prediction.expected_arrival,
        time_left_to_catch_seconds=time_left,
        status=classify(time_left, uncertainty_seconds),
    )


def best_catchable(infos: Iterable[CatchInfo], limit: int = 3) -> list[CatchInfo]:
    """Earliest non-missed trains, at most `limit` of them."""
    catchable = [i for i in infos if i.can_catch]
    catchable.sort(key=lambda i: i.expected_arrival)
    return catchable[:limit]


class Feedback(str, enum.Enum):
    SPEED_UP = "speed_up"
    SLOW_DOWN = "slow_down"
    ON_TIME = "on_time"
    LIKELY_MISSED = "likely_missed"
    TRAIN_ARRIVING_NOW = "train_arriving_now"

    @property
    def speech_text(self) -> str:
        return _SPEECH[self]

    @property
    def visual_text(self) -> str:
        return _VISUAL[self]


_SPEECH = {
    Feedback.SPEED_UP: "Speed up to catch the train",
    Feedback.SLOW_DOWN: "You can slow down a little",
    Feedback.ON_TIME: "You're on time",
    Feedback.LIKELY_MISSED: "Likely to miss the train",
    Feedback.TRAIN_ARRIVING_NOW: "Train arriving now",
}

_VISUAL = {
    Feedback.SPEED_UP: "Speed Up",
    Feedback.SLOW_DOWN: "Ease Off",
    Feedback.ON_TIME: "On Time",
    Feedback.LIKELY_MISSED: "Likely Missed",
    Feedback.TRAIN_ARRIVING_NOW: "Train Arriving Now",
}

# Seconds before arrival at which "train arriving now" takes over.
ARRIVING_NOW_SECONDS = 30.0


def choose_feedback(
    status: CatchStatus,
    seconds_to_arrival: float,
    pacing_direction: str | None = None,
) -> Feedback:
    """Pick the user-facing message for the current catch status and pacing state.

    pacing_direction is "too_slow", "too_fast" or None when not pacing.
    """
    if status == CatchStatus.MISSED:
        return Feedback.LIKELY_MISSED
    if 0 <= seconds_to_arrival <= ARRIVING_NOW_SECONDS:
        return Feedback.TRAIN_ARRIVING_NOW
    if pacing_direction == "too_slow" or status == CatchStatus.TIGHT:
        return Feedback.SPEED_UP
    if pacing_direction == "too_fast":
        return Feedback.SLOW_DOWN
    return Feedback.ON_TIME
