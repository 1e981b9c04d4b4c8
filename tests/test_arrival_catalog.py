"""Tests for ArrivalCatalog fan-out and merge."""

import asyncio
import datetime

from trainpace.core.arrival_catalog import ArrivalCatalog
from trainpace.core.tfl_client import ArrivalPrediction

NOW = datetime.datetime(2025, 3, 15, 14, 30, 0, tzinfo=datetime.timezone.utc)


def make_predictions(line_id: str, count: int) -> list[ArrivalPrediction]:
    return [
        ArrivalPrediction(
            line_id=line_id,
            id=f"{line_id}-{i}",
            expected_arrival=NOW + datetime.timedelta(minutes=i + 1),
        )
        for i in range(count)
    ]


class FakeClient:
    def __init__(self, lines, arrivals):
        self.lines = lines
        self.arrivals = arrivals
        self.requested = []

    async def fetch_lines_for_stop(self, stop_id):
        return self.lines

    async def fetch_line_arrivals(self, line_id, stop_id):
        self.requested.append(line_id)
        result = self.arrivals.get(line_id)
        if isinstance(result, Exception):
            raise result
        return result


def test_failed_line_contributes_nothing():
    client = FakeClient(
        ["bakerloo", "victoria"],
        {"bakerloo": RuntimeError("timeout"), "victoria": make_predictions("victoria", 3)},
    )
    merged = asyncio.run(ArrivalCatalog(client).fetch_arrivals("940GZZLUOXC"))
    assert len(merged) == 3
    assert {p.line_id for p in merged} == {"victoria"}


def test_none_result_is_skipped():
    client = FakeClient(
        ["central", "victoria"],
        {"central": None, "victoria": make_predictions("victoria", 2)},
    )
    merged = asyncio.run(ArrivalCatalog(client).fetch_arrivals("940GZZLUOXC"))
    assert len(merged) == 2


def test_merges_all_lines():
    client = FakeClient(
        ["bakerloo", "central", "victoria"],
        {
            "bakerloo": make_predictions("bakerloo", 2),
            "central": make_predictions("central", 1),
            "victoria": make_predictions("victoria", 3),
        },
    )
    merged = asyncio.run(ArrivalCatalog(client).fetch_arrivals("940GZZLUOXC"))
    assert len(merged) == 6


def test_line_filter_intersects_serving_lines():
    client = FakeClient(
        ["bakerloo", "central", "victoria"],
        {"victoria": make_predictions("victoria", 1), "central": make_predictions("central", 1)},
    )
    merged = asyncio.run(
        ArrivalCatalog(client).fetch_arrivals("940GZZLUOXC", line_filter=["victoria", "jubilee"])
    )
    assert client.requested == ["victoria"]
    assert [p.line_id for p in merged] == ["victoria"]


def test_filter_with_no_overlap_fetches_nothing():
    client = FakeClient(["bakerloo"], {})
    merged = asyncio.run(ArrivalCatalog(client).fetch_arrivals("940GZZLUOXC", line_filter=["jubilee"]))
    assert merged == []
    assert client.requested == []


def test_failed_lines_lookup_gives_empty_list():
    client = FakeClient(None, {"victoria": make_predictions("victoria", 3)})
    assert asyncio.run(ArrivalCatalog(client).fetch_arrivals("940GZZLUOXC")) == []
    assert client.requested == []


def test_lines_fetched_concurrently():
    # Each line waits until every line has been requested, so a sequential
    # fetch would never finish.
    class BarrierClient(FakeClient):
        def __init__(self, lines):
            super().__init__(lines, {})
            self.all_started = asyncio.Event()

        async def fetch_line_arrivals(self, line_id, stop_id):
            self.requested.append(line_id)
            if len(self.requested) == len(self.lines):
                self.all_started.set()
            await self.all_started.wait()
            return make_predictions(line_id, 1)

    async def run():
        client = BarrierClient(["bakerloo", "central", "victoria"])
        return await asyncio.wait_for(ArrivalCatalog(client).fetch_arrivals("940GZZLUOXC"), timeout=1)

    assert len(asyncio.run(run())) == 3
