"""Merge per-line TfL arrival predictions for a stop."""

import asyncio
import logging
from collections.abc import Iterable

from trainpace.core.tfl_client import ArrivalPrediction, TflClient

logger = logging.getLogger(__name__)


class ArrivalCatalog:
    """Fans out one arrivals request per line and joins them into one list."""

    def __init__(self, client: TflClient) -> None:
        self.client = client

    async def fetch_arrivals(
        self,
        stop_id: str,
        line_filter: Iterable[str] | None = None,
    ) -> list[ArrivalPrediction]:
        """All predictions at a stop, unsorted.

        A failed line contributes nothing; a failed serving-lines lookup
        yields an empty list.
        """
        serving = await self.client.fetch_lines_for_stop(stop_id)
        if serving is None:
            logger.warning("Could not enumerate lines at %s", stop_id)
            return []

        if line_filter is not None:
            wanted = set(line_filter)
            lines = [line_id for line_id in serving if line_id in wanted]
        else:
            lines = list(serving)
        if not lines:
            return []

        results = await asyncio.gather(
            *(self.client.fetch_line_arrivals(line_id, stop_id) for line_id in lines),
            return_exceptions=True,
        )

        merged: list[ArrivalPrediction] = []
        for line_id, result in zip(lines, results):
            if isinstance(result, BaseException):
                logger.warning("Arrivals for %s at %s failed: %r", line_id, stop_id, result)
                continue
            if result is None:
                continue
            merged.extend(result)

        logger.info(
            "Merged %d predictions from %d lines at %s", len(merged), len(lines), stop_id,
        )
        return merged
