"""Historical station-entrance-to-platform walking times."""

import asyncio
import datetime
import logging

from trainpace.core.journey_plan import now_utc
from trainpace.core.station_resolver import normalize_station_name
from trainpace.models.tables import PlatformTime

logger = logging.getLogger(__name__)

# Estimate used for stations without any recorded walk
DEFAULT_PLATFORM_SECONDS = 120.0


class PlatformTimeStore:
    """Reads and records per-station platform walk estimates.

    Reads fall back to the default on a miss or a database error. Writes are
    fire-and-forget background tasks that fold each observation into a
    running mean.
    """

    def __init__(self, session_factory, default_seconds: float = DEFAULT_PLATFORM_SECONDS) -> None:
        self.session_factory = session_factory
        self.default_seconds = default_seconds
        self._pending: set[asyncio.Task] = set()

    async def get(self, station_name: str) -> float:
        key = normalize_station_name(station_name)
        if not key:
            return self.default_seconds
        try:
            async with self.session_factory() as session:
                row = await session.get(PlatformTime, key)
        except Exception:
            logger.exception("Failed to load platform time for %s", key)
            return self.default_seconds
        return row.seconds if row else self.default_seconds

    def record(self, station_name: str, seconds: float) -> asyncio.Task | None:
        key = normalize_station_name(station_name)
        if not key or seconds < 0:
            return None
        task = asyncio.get_running_loop().create_task(self._save(key, seconds))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for outstanding writes (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _save(self, key: str, seconds: float) -> None:
        try:
            async with self.session_factory() as session:
                row = await session.get(PlatformTime, key)
                now = now_utc()
                if row is None:
                    session.add(PlatformTime(
                        station_name=key, seconds=seconds, sample_count=1, updated_at=now,
                    ))
                else:
                    total = row.seconds * row.sample_count + seconds
                    row.sample_count += 1
                    row.seconds = total / row.sample_count
                    row.updated_at = now
                await session.commit()
            logger.debug("Recorded %.0fs platform walk at %s", seconds, key)
        except Exception:
            logger.exception("Failed to record platform time for %s", key)


class PlatformTimer:
    """Times the walk from a station entrance to the platform."""

    def __init__(self, store: PlatformTimeStore) -> None:
        self.store = store
        self.station: str | None = None
        self.started_at: datetime.datetime | None = None

    def start(self, station: str, now: datetime.datetime | None = None) -> None:
        self.station = station
        self.started_at = now or now_utc()
        logger.info("Started platform timing at %s", station)

    def stop_and_record(self, now: datetime.datetime | None = None) -> float | None:
        """Record the elapsed walk. Returns the duration, or None if not started."""
        if self.station is None or self.started_at is None:
            return None
        duration = ((now or now_utc()) - self.started_at).total_seconds()
        self.store.record(self.station, duration)
        logger.info("Platform walk at %s took %.0fs", self.station, duration)
        self.station = None
        self.started_at = None
        return duration
