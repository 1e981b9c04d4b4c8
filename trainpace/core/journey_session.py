"""Journey sessions: resolve a station, pick a train, track and pace the traveler."""

import datetime
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field, replace

from trainpace.core.arrival_catalog import ArrivalCatalog
from trainpace.core.broadcaster import Broadcaster
from trainpace.core.catch_classifier import (
    CatchInfo,
    Feedback,
    best_catchable,
    choose_feedback,
    evaluate,
)
from trainpace.core.geo import LatLon, distance_m
from trainpace.core.journey_plan import (
    WALK_TO_STATION,
    JourneyPlan,
    PhaseKind,
    ProgressPhase,
    as_utc,
    now_utc,
)
from trainpace.core.pacing_controller import LocationSample, PacingController
from trainpace.core.platform_times import PlatformTimer, PlatformTimeStore
from trainpace.core.progress_tracker import ProgressTracker, ProgressUpdate
from trainpace.core.station_resolver import StationEntry, StationResolver
from trainpace.core.tfl_client import ArrivalPrediction

logger = logging.getLogger(__name__)

# Progress ticks run at display rate; publish at most this often (s) between phase changes
PROGRESS_PUBLISH_INTERVAL = 1.0


@dataclass
class SessionConfig:
    uncertainty_seconds: float = 20.0
    catchable_limit: int = 3
    tick_hz: float | None = 60.0  # None: ticks driven externally
    station_proximity_m: float = 10.0
    pacing_deviation_threshold: float = 0.1
    pacing_min_speed_mps: float = 0.5
    pacing_min_location_delta_m: float = 10.0
    pacing_fast_cue_interval: float = 0.5
    pacing_slow_cue_interval: float = 1.0
    pacing_min_cue_hz: float = 0.5
    pacing_max_cue_hz: float = 2.0
    speed_history_size: int = 100

    @classmethod
    def from_settings(cls, s) -> "SessionConfig":
        return cls(
            uncertainty_seconds=s.uncertainty_seconds,
            catchable_limit=s.catchable_limit,
            tick_hz=s.tick_hz,
            station_proximity_m=s.station_proximity_m,
            pacing_deviation_threshold=s.pacing_deviation_threshold,
            pacing_min_speed_mps=s.pacing_min_speed_mps,
            pacing_min_location_delta_m=s.pacing_min_location_delta_m,
            pacing_fast_cue_interval=s.pacing_fast_cue_interval,
            pacing_slow_cue_interval=s.pacing_slow_cue_interval,
            pacing_min_cue_hz=s.pacing_min_cue_hz,
            pacing_max_cue_hz=s.pacing_max_cue_hz,
            speed_history_size=s.speed_history_size,
        )


@dataclass
class JourneyRequest:
    station_name: str
    walk_to_station_seconds: float
    transfer_seconds: list[float] = field(default_factory=list)
    line_ids: list[str] | None = None
    origin: LatLon | None = None
    platform_seconds: float | None = None  # overrides the stored estimate


class JourneySession:
    """One traveler heading for one station.

    Receives progress and pacing callbacks from its tracker and pacing
    controller and republishes them as events. Arrival refreshes carry a
    generation number; results from superseded refreshes are dropped.
    """

    def __init__(
        self,
        session_id: str,
        station: StationEntry,
        request: JourneyRequest,
        platform_seconds: float,
        catalog: ArrivalCatalog,
        broadcaster: Broadcaster | None = None,
        platform_timer: PlatformTimer | None = None,
        config: SessionConfig | None = None,
        clock: Callable[[], datetime.datetime] = now_utc,
    ) -> None:
        self.session_id = session_id
        self.station = station
        self.request = request
        self.platform_seconds = platform_seconds
        self.catalog = catalog
        self.broadcaster = broadcaster
        self.platform_timer = platform_timer
        self.config = config or SessionConfig()
        self.clock = clock

        self.station_location = (
            LatLon(station.lat, station.lon)
            if station.lat is not None and station.lon is not None else None
        )
        self.catch_infos: list[CatchInfo] = []
        self.target: ArrivalPrediction | None = None
        self.tracker: ProgressTracker | None = None
        self.last_update: ProgressUpdate | None = None
        self.feedback: Feedback | None = None
        self.closed = False

        self._generation = 0
        self._last_progress_publish: float | None = None
        self.pacing = self._new_pacing_controller()

    # --- arrivals -------------------------------------------------------

    async def refresh_arrivals(self) -> None:
        """Fetch arrivals and re-evaluate catchability for every candidate train."""
        if self.closed:
            return
        self._generation += 1
        generation = self._generation
        predictions = await self.catalog.fetch_arrivals(self.station.stop_id, self.request.line_ids)
        if self.closed or generation != self._generation:
            logger.debug("Session %s: dropping stale arrivals (gen %d)", self.session_id, generation)
            return
        self.apply_arrivals(predictions)

    def apply_arrivals(
        self, predictions: list[ArrivalPrediction], now: datetime.datetime | None = None,
    ) -> None:
        now = now or self.clock()
        elapsed = self.tracker.elapsed_seconds(now) if self.tracker else 0.0
        pairs = [
            (evaluate(
                prediction, self.plan_for(prediction.expected_arrival), now,
                self.config.uncertainty_seconds, elapsed,
            ), prediction)
            for prediction in predictions
        ]
        pairs.sort(key=lambda pair: pair[0].expected_arrival)
        self.catch_infos = [info for info, _ in pairs]

        best = best_catchable(self.catch_infos, self.config.catchable_limit)
        if self.target is None:
            if best:
                chosen = next(p for info, p in pairs if info is best[0])
                self._start_tracking(chosen, now)
        else:
            refreshed = next((p for p in predictions if self._same_train(p, self.target)), None)
            if refreshed and refreshed.expected_arrival != self.target.expected_arrival:
                self._retarget(refreshed)

        self._publish({
            "type": "catch",
            "trains": [self._catch_info_dict(i) for i in best],
        })

    def plan_for(self, target_arrival: datetime.datetime) -> JourneyPlan:
        return JourneyPlan(
            walk_to_station_seconds=self.request.walk_to_station_seconds,
            station_to_platform_seconds=self.platform_seconds,
            transfer_seconds=tuple(self.request.transfer_seconds),
            target_arrival=target_arrival,
            origin_location=self.request.origin,
            station_location=self.station_location,
        )

    @staticmethod
    def _same_train(a: ArrivalPrediction, b: ArrivalPrediction) -> bool:
        if a.id and b.id:
            return a.id == b.id and a.line_id == b.line_id
        return False

    def _start_tracking(self, prediction: ArrivalPrediction, now: datetime.datetime) -> None:
        self.target = prediction
        self.tracker = self._new_tracker(self.plan_for(prediction.expected_arrival))
        self.tracker.start(now)
        logger.info(
            "Session %s: targeting %s train to %s at %s",
            self.session_id, prediction.line_id, prediction.destination_name,
            prediction.expected_arrival.isoformat(),
        )

    def _retarget(self, prediction: ArrivalPrediction) -> None:
        """Swap in a plan for the target's revised arrival, keeping elapsed time."""
        old = self.tracker
        self.target = prediction
        if old is None or not old.running:
            return
        old.stop()
        tracker = self._new_tracker(self.plan_for(prediction.expected_arrival))
        tracker.start(old.start_time)
        tracker.carry_over(old)
        self.tracker = tracker
        logger.info(
            "Session %s: target arrival revised to %s",
            self.session_id, prediction.expected_arrival.isoformat(),
        )

    # --- location -------------------------------------------------------

    def update_location(self, sample: LocationSample, now: datetime.datetime | None = None) -> None:
        if self.closed or self.tracker is None:
            return
        if sample.timestamp is not None:
            sample = replace(sample, timestamp=as_utc(sample.timestamp))
        now = as_utc(now or sample.timestamp or self.clock())
        self.tracker.update_location(sample.position, now)

        if self.tracker.phase != WALK_TO_STATION or self.station_location is None:
            return
        plan = self.tracker.plan
        distance_remaining = distance_m(sample.position, self.station_location)
        # Time left for the walk once the platform and transfer legs are reserved
        time_remaining = (
            (plan.target_arrival - now).total_seconds()
            - (plan.total_seconds - plan.walk_to_station_seconds)
        )
        self.pacing.ingest(sample, distance_remaining, time_remaining)

    def mark_on_platform(self, now: datetime.datetime | None = None) -> float | None:
        """Traveler reports reaching the platform; records the platform walk."""
        if self.platform_timer is None:
            return None
        return self.platform_timer.stop_and_record(now)

    # --- lifecycle ------------------------------------------------------

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._generation += 1
        if self.tracker:
            self.tracker.stop()
        self.pacing.stop()
        logger.info("Session %s closed", self.session_id)

    def snapshot(self) -> dict:
        update = self.last_update
        return {
            "type": "snapshot",
            "session_id": self.session_id,
            "station": {"stop_id": self.station.stop_id, "name": self.station.name},
            "target": self._prediction_dict(self.target) if self.target else None,
            "progress": self._progress_dict(update) if update else None,
            "pacing_active": self.pacing.pacing_active,
            "pacing_direction": self.pacing.direction.value if self.pacing.direction else None,
            "average_speed": self.pacing.speed_profile.average_speed,
            "feedback": self.feedback.value if self.feedback else None,
            "trains": [self._catch_info_dict(i) for i in self.catch_infos],
            "closed": self.closed,
        }

    # --- ProgressObserver -----------------------------------------------

    def on_progress(self, update: ProgressUpdate) -> None:
        self.last_update = update
        self._update_feedback(update)
        last = self._last_progress_publish
        if (last is None or update.phase.kind == PhaseKind.FINISHED
                or update.elapsed_seconds - last >= PROGRESS_PUBLISH_INTERVAL
                or update.elapsed_seconds < last):
            self._last_progress_publish = update.elapsed_seconds
            self._publish(self._progress_dict(update))

    def on_phase_change(self, phase: ProgressPhase) -> None:
        self._publish({"type": "phase", "phase": phase.label})
        if phase != WALK_TO_STATION:
            # Pacing only applies to the walk to the station
            self.pacing.stop()

    def on_station_arrival(self, now: datetime.datetime) -> None:
        if self.platform_timer is not None:
            self.platform_timer.start(self.station.name, now)
        self._publish({"type": "station_arrival", "at": now.isoformat()})

    # --- PacingObserver -------------------------------------------------

    def on_pacing(self, observed_speed: float, target_speed: float) -> None:
        self._publish({
            "type": "pacing",
            "observed_speed": observed_speed,
            "target_speed": target_speed,
            "active": self.pacing.pacing_active,
        })

    def on_projected_arrival(self, seconds: float) -> None:
        self._publish({"type": "projected_arrival", "seconds": seconds})

    def on_cue(self) -> None:
        direction = self.pacing.direction
        self._publish({"type": "cue", "direction": direction.value if direction else None})

    # --- helpers ----------------------------------------------------------

    def _new_tracker(self, plan: JourneyPlan) -> ProgressTracker:
        return ProgressTracker(
            plan,
            observer=self,
            uncertainty_seconds=self.config.uncertainty_seconds,
            proximity_m=self.config.station_proximity_m,
            tick_interval=1.0 / self.config.tick_hz if self.config.tick_hz else None,
            clock=self.clock,
        )

    def _new_pacing_controller(self) -> PacingController:
        c = self.config
        return PacingController(
            observer=self,
            deviation_threshold=c.pacing_deviation_threshold,
            min_speed=c.pacing_min_speed_mps,
            min_location_delta_m=c.pacing_min_location_delta_m,
            fast_cue_interval=c.pacing_fast_cue_interval,
            slow_cue_interval=c.pacing_slow_cue_interval,
            min_cue_hz=c.pacing_min_cue_hz,
            max_cue_hz=c.pacing_max_cue_hz,
            history_size=c.speed_history_size,
        )

    def _update_feedback(self, update: ProgressUpdate) -> None:
        direction = self.pacing.direction if self.pacing.pacing_active else None
        feedback = choose_feedback(update.status, update.delta, direction)
        if feedback != self.feedback:
            self.feedback = feedback
            self._publish({
                "type": "feedback",
                "feedback": feedback.value,
                "speech": feedback.speech_text,
                "text": feedback.visual_text,
            })

    def _publish(self, event: dict) -> None:
        if self.broadcaster is None:
            return
        event["session_id"] = self.session_id
        self.broadcaster.publish_nowait(self.session_id, event)

    @staticmethod
    def _progress_dict(update: ProgressUpdate) -> dict:
        return {
            "type": "progress",
            "phase": update.phase.label,
            "completion_fraction": update.completion_fraction,
            "overall_fraction": update.overall_fraction,
            "can_catch": update.can_catch,
            "delta": update.delta,
            "time_left_to_catch": update.time_left_to_catch,
            "uncertainty": update.uncertainty,
            "status": update.status.value,
        }

    @staticmethod
    def _catch_info_dict(info: CatchInfo) -> dict:
        return {
            "line_id": info.line_id,
            "destination": info.destination,
            "platform": info.platform,
            "expected_arrival": info.expected_arrival.isoformat(),
            "time_left_to_catch": info.time_left_to_catch_seconds,
            "status": info.status.value,
        }

    @staticmethod
    def _prediction_dict(p: ArrivalPrediction) -> dict:
        return {
            "line_id": p.line_id,
            "destination": p.destination_name,
            "platform": p.platform_name,
            "expected_arrival": p.expected_arrival.isoformat(),
        }


class SessionManager:
    """Owns the live journey sessions."""

    def __init__(
        self,
        resolver: StationResolver,
        catalog: ArrivalCatalog,
        platform_store: PlatformTimeStore | None = None,
        broadcaster: Broadcaster | None = None,
        config: SessionConfig | None = None,
        default_platform_seconds: float = 120.0,
        clock: Callable[[], datetime.datetime] = now_utc,
    ) -> None:
        self.resolver = resolver
        self.catalog = catalog
        self.platform_store = platform_store
        self.broadcaster = broadcaster
        self.config = config or SessionConfig()
        self.default_platform_seconds = default_platform_seconds
        self.clock = clock
        self.sessions: dict[str, JourneySession] = {}

    async def create(self, request: JourneyRequest) -> JourneySession | None:
        """Start a session, or None when the station cannot be resolved."""
        station = await self.resolver.resolve_entry(request.station_name)
        if station is None:
            return None

        if request.platform_seconds is not None:
            platform_seconds = request.platform_seconds
        elif self.platform_store is not None:
            platform_seconds = await self.platform_store.get(station.name)
        else:
            platform_seconds = self.default_platform_seconds

        session = JourneySession(
            session_id=uuid.uuid4().hex,
            station=station,
            request=request,
            platform_seconds=platform_seconds,
            catalog=self.catalog,
            broadcaster=self.broadcaster,
            platform_timer=PlatformTimer(self.platform_store) if self.platform_store else None,
            config=self.config,
            clock=self.clock,
        )
        self.sessions[session.session_id] = session
        await session.refresh_arrivals()
        logger.info(
            "Session %s created for %s (%s), platform walk %.0fs",
            session.session_id, station.name, station.stop_id, platform_seconds,
        )
        return session

    def get(self, session_id: str) -> JourneySession | None:
        return self.sessions.get(session_id)

    def close(self, session_id: str) -> bool:
        session = self.sessions.pop(session_id, None)
        if session is None:
            return False
        session.close()
        return True

    def close_all(self) -> None:
        for session_id in list(self.sessions):
            self.close(session_id)

    async def refresh_all(self) -> None:
        """Refresh arrivals for every open session (scheduled job)."""
        for session in list(self.sessions.values()):
            try:
                await session.refresh_arrivals()
            except Exception:
                logger.exception("Arrival refresh failed for session %s", session.session_id)
