"""Resolve free-text station names to TfL stop point ids.

Names are normalized (lowercased, "station" / "underground station" suffix
stripped) and looked up in a process-lifetime index: exact key first, then a
substring scan, then a live StopPoint search whose first match is cached.
"""

import asyncio
import logging
from dataclasses import dataclass

from trainpace.core.geo import haversine_m
from trainpace.core.tfl_client import RawStop, TflClient

logger = logging.getLogger(__name__)

_SUFFIXES = ("underground station", "station")


def normalize_station_name(name: str) -> str:
    """'Oxford Circus Underground Station' -> 'oxford circus'."""
    if not isinstance(name, str):
        return ""
    cleaned = name.lower().strip()
    for suffix in _SUFFIXES:
        if cleaned.endswith(suffix):
            cleaned = cleaned[: -len(suffix)].strip()
            break
    return cleaned


@dataclass(frozen=True)
class StationEntry:
    stop_id: str
    name: str
    lat: float | None = None
    lon: float | None = None


class StationIndex:
    """Normalized name -> StationEntry. Entries never expire.

    Reads go straight to the dict; writes are serialized through a lock so
    concurrent resolutions can populate it safely.
    """

    def __init__(self) -> None:
        self._entries: dict[str, StationEntry] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> StationEntry | None:
        return self._entries.get(key)

    def find_containing(self, fragment: str) -> StationEntry | None:
        """First entry whose key contains the fragment. Order is unspecified."""
        for key, entry in list(self._entries.items()):
            if fragment in key:
                return entry
        return None

    async def put(self, key: str, entry: StationEntry) -> None:
        async with self._lock:
            self._entries[key] = entry

    async def put_many(self, entries: dict[str, StationEntry]) -> None:
        async with self._lock:
            self._entries.update(entries)

    def nearest(self, lat: float, lon: float) -> StationEntry | None:
        """Closest indexed station that has coordinates."""
        best = None
        best_dist = float("inf")
        for entry in list(self._entries.values()):
            if entry.lat is None or entry.lon is None:
                continue
            d = haversine_m(lat, lon, entry.lat, entry.lon)
            if d < best_dist:
                best_dist = d
                best = entry
        return best


class StationResolver:
    """Station name -> stop id, backed by a shared StationIndex and TfL search."""

    def __init__(self, client: TflClient, index: StationIndex | None = None) -> None:
        self.client = client
        self.index = index or StationIndex()

    async def load_directory(self) -> int:
        """Preload the index from the TfL station directory. Returns entry count."""
        stops = await self.client.fetch_stop_directory()
        entries = {}
        for stop in stops:
            key = normalize_station_name(stop.name)
            if key:
                entries[key] = self._entry_from_stop(stop)
        await self.index.put_many(entries)
        logger.info("Station index loaded with %d stations", len(self.index))
        return len(entries)

    async def resolve(self, raw_name: str) -> str | None:
        """Resolve a station name to a stop id, or None if not found."""
        entry = await self.resolve_entry(raw_name)
        return entry.stop_id if entry else None

    async def resolve_entry(self, raw_name: str) -> StationEntry | None:
        key = normalize_station_name(raw_name)
        if not key:
            return None

        entry = self.index.get(key)
        if entry:
            return entry

        entry = self.index.find_containing(key)
        if entry:
            logger.debug("Resolved %r by substring match to %s", raw_name, entry.stop_id)
            return entry

        matches = await self.client.search_stops(raw_name.strip())
        if not matches:
            logger.info("Station %r not found", raw_name)
            return None

        entry = self._entry_from_stop(matches[0])
        await self.index.put(key, entry)
        logger.info("Resolved %r via live search to %s", raw_name, entry.stop_id)
        return entry

    @staticmethod
    def _entry_from_stop(stop: RawStop) -> StationEntry:
        return StationEntry(stop_id=stop.id, name=stop.name, lat=stop.lat, lon=stop.lon)
