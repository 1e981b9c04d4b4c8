"""Async client for the TfL Unified API (stop points, lines, arrivals)."""

import asyncio
import datetime
import logging
from dataclasses import dataclass, field

import httpx

from trainpace.config import settings

logger = logging.getLogger(__name__)

# Retry configuration
MAX_RETRIES = 3
RETRY_BACKOFF = [2, 4, 8]  # seconds between retries

# Accepted expectedArrival formats, tried in order: strict ISO-8601 with
# fractional seconds, then the legacy second-precision pattern.
_ARRIVAL_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
)

LINE_IDS: dict[str, str] = {
    "Bakerloo": "bakerloo",
    "Central": "central",
    "Circle": "circle",
    "District": "district",
    "Hammersmith & City": "hammersmith-city",
    "Jubilee": "jubilee",
    "Metropolitan": "metropolitan",
    "Northern": "northern",
    "Piccadilly": "piccadilly",
    "Victoria": "victoria",
    "Waterloo & City": "waterloo-city",
    "London Overground": "london-overground",
    "Elizabeth": "elizabeth",
    "Elizabeth line": "elizabeth",
    "TfL Rail": "elizabeth",
    "DLR": "dlr",
    "Tram": "tram",
}


def line_id_for_name(line_name: str) -> str | None:
    """Map a display line name like 'Hammersmith & City' to its TfL line id."""
    if not line_name:
        return None
    if line_name in LINE_IDS:
        return LINE_IDS[line_name]
    lower = line_name.strip().lower()
    for name, line_id in LINE_IDS.items():
        if name.lower() == lower:
            return line_id
    return None


def parse_expected_arrival(raw: str | None) -> datetime.datetime | None:
    """Parse a TfL expectedArrival string to an aware UTC datetime.

    Returns None when the value matches neither accepted format.
    """
    if not raw or not isinstance(raw, str):
        return None
    for fmt in _ARRIVAL_FORMATS:
        try:
            parsed = datetime.datetime.strptime(raw.strip(), fmt)
        except ValueError:
            continue
        return parsed.astimezone(datetime.timezone.utc)
    return None


@dataclass
class ArrivalPrediction:
    line_id: str
    expected_arrival: datetime.datetime
    id: str = ""
    line_name: str = ""
    station_name: str = ""
    platform_name: str = ""
    destination_name: str = ""
    time_to_station: float = 0.0  # seconds, as reported by TfL


@dataclass
class RawStop:
    id: str
    name: str
    lat: float | None = None
    lon: float | None = None


@dataclass
class LineStatusEntry:
    severity: int
    description: str
    reason: str | None = None


@dataclass
class LineStatus:
    line_id: str
    name: str
    statuses: list[LineStatusEntry] = field(default_factory=list)


class TflClient:
    """Fetches stop points, serving lines and arrival predictions from TfL."""

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_backoff: list[float] | None = None,
    ) -> None:
        params = {"app_key": settings.tfl_app_key} if settings.tfl_app_key else None
        self._client = httpx.AsyncClient(
            base_url=settings.tfl_base_url,
            timeout=settings.http_timeout_seconds,
            headers={"Accept": "application/json"},
            params=params,
            transport=transport,
        )
        self._retry_backoff = retry_backoff if retry_backoff is not None else RETRY_BACKOFF

    async def close(self) -> None:
        await self._client.aclose()

    async def _get_with_retry(
        self, path: str, label: str, params: dict | None = None,
    ) -> httpx.Response | None:
        """GET request with retry and backoff on transient failures."""
        for attempt in range(MAX_RETRIES + 1):
            try:
                resp = await self._client.get(path, params=params)
                resp.raise_for_status()
                return resp
            except (httpx.ReadTimeout, httpx.ConnectTimeout, httpx.ConnectError) as e:
                if attempt < MAX_RETRIES:
                    wait = self._retry_backoff[attempt]
                    logger.warning(
                        "%s attempt %d/%d failed (%s), retrying in %ss",
                        label, attempt + 1, MAX_RETRIES + 1, type(e).__name__, wait,
                    )
                    await asyncio.sleep(wait)
                else:
                    logger.error("%s failed after %d attempts: %s", label, MAX_RETRIES + 1, e)
                    return None
            except httpx.HTTPStatusError as e:
                if e.response.status_code >= 500 and attempt < MAX_RETRIES:
                    wait = self._retry_backoff[attempt]
                    logger.warning(
                        "%s attempt %d/%d got HTTP %d, retrying in %ss",
                        label, attempt + 1, MAX_RETRIES + 1, e.response.status_code, wait,
                    )
                    await asyncio.sleep(wait)
                else:
                    logger.error("Failed to fetch %s from TfL: %s", label, e)
                    return None
            except Exception:
                logger.exception("Failed to fetch %s from TfL", label)
                return None
        return None

    async def _get_json(self, path: str, label: str, params: dict | None = None):
        resp = await self._get_with_retry(path, label, params)
        if resp is None:
            return None
        try:
            return resp.json()
        except ValueError:
            logger.exception("Failed to decode %s response from TfL", label)
            return None

    @staticmethod
    def _parse_stop(item: dict, name_key: str, id_keys: tuple[str, ...]) -> RawStop | None:
        stop_id = next((item.get(k) for k in id_keys if item.get(k)), None)
        name = str(item.get(name_key) or "").strip()
        if not stop_id or not name:
            return None
        lat = item.get("lat")
        lon = item.get("lon")
        return RawStop(
            id=str(stop_id),
            name=name,
            lat=float(lat) if lat is not None else None,
            lon=float(lon) if lon is not None else None,
        )

    async def fetch_stop_directory(self, modes: str | None = None) -> list[RawStop]:
        """Fetch every stop point for the given modes (the station directory)."""
        modes = modes or settings.tfl_modes
        data = await self._get_json(f"/StopPoint/Mode/{modes}", "stop directory")
        if not isinstance(data, dict):
            logger.info("Fetched 0 stop points from TfL")
            return []

        stops = []
        for item in data.get("stopPoints", []):
            try:
                stop = self._parse_stop(item, "commonName", ("naptanId", "id"))
            except (ValueError, TypeError, AttributeError):
                continue
            if stop:
                stops.append(stop)
        logger.info("Fetched %d stop points from TfL", len(stops))
        return stops

    async def search_stops(self, query: str, modes: str | None = None) -> list[RawStop]:
        """Free-text stop point search; best match first."""
        data = await self._get_json(
            "/StopPoint/Search",
            "stop search",
            params={"query": query, "modes": modes or settings.tfl_modes},
        )
        if not isinstance(data, dict):
            return []

        matches = []
        for item in data.get("matches", []):
            try:
                stop = self._parse_stop(item, "name", ("naptanId", "id"))
            except (ValueError, TypeError, AttributeError):
                continue
            if stop:
                matches.append(stop)
        logger.debug("Stop search %r returned %d matches", query, len(matches))
        return matches

    async def fetch_lines_for_stop(self, stop_id: str) -> list[str] | None:
        """Line ids serving a stop, or None if the lookup itself failed."""
        data = await self._get_json(f"/StopPoint/{stop_id}", f"lines at {stop_id}")
        if not isinstance(data, dict):
            return None

        line_ids = []
        for line in data.get("lines", []):
            if isinstance(line, dict) and line.get("id"):
                line_ids.append(str(line["id"]))
        logger.debug("Stop %s is served by %d lines: %s", stop_id, len(line_ids), line_ids)
        return line_ids

    async def fetch_line_arrivals(self, line_id: str, stop_id: str) -> list[ArrivalPrediction] | None:
        """Arrival predictions for one line at one stop, or None on failure."""
        data = await self._get_json(
            f"/Line/{line_id}/Arrivals/{stop_id}", f"arrivals {line_id}@{stop_id}",
        )
        if not isinstance(data, list):
            return None

        predictions = []
        for item in data:
            try:
                expected = parse_expected_arrival(item.get("expectedArrival"))
                if expected is None:
                    logger.debug(
                        "Dropping %s prediction with bad expectedArrival %r",
                        line_id, item.get("expectedArrival"),
                    )
                    continue
                predictions.append(ArrivalPrediction(
                    id=str(item.get("id") or ""),
                    line_id=str(item.get("lineId") or line_id),
                    line_name=str(item.get("lineName") or ""),
                    station_name=str(item.get("stationName") or ""),
                    platform_name=str(item.get("platformName") or ""),
                    destination_name=str(item.get("destinationName") or ""),
                    expected_arrival=expected,
                    time_to_station=float(item.get("timeToStation") or 0),
                ))
            except (ValueError, TypeError, AttributeError) as e:
                logger.debug("Skipping malformed prediction record: %s", e)
                continue

        logger.info("Fetched %d %s predictions at %s", len(predictions), line_id, stop_id)
        return predictions

    async def fetch_line_status(self, line_id: str) -> LineStatus | None:
        """Current service status for a line."""
        data = await self._get_json(f"/Line/{line_id}/Status", f"status {line_id}")
        if not isinstance(data, list) or not data:
            return None

        item = data[0]
        try:
            status = LineStatus(
                line_id=str(item.get("id") or line_id),
                name=str(item.get("name") or ""),
            )
            for entry in item.get("lineStatuses", []):
                status.statuses.append(LineStatusEntry(
                    severity=int(entry.get("statusSeverity", 0)),
                    description=str(entry.get("statusSeverityDescription") or ""),
                    reason=entry.get("reason"),
                ))
        except (ValueError, TypeError, AttributeError):
            logger.exception("Failed to parse %s status from TfL", line_id)
            return None
        return status
