"""Tests for station name normalization and resolution."""

import asyncio

from trainpace.core.station_resolver import (
    StationEntry,
    StationIndex,
    StationResolver,
    normalize_station_name,
)
from trainpace.core.tfl_client import RawStop

OXFORD_CIRCUS = RawStop("940GZZLUOXC", "Oxford Circus Underground Station", 51.5152, -0.1418)
BOND_STREET = RawStop("940GZZLUBND", "Bond Street Underground Station", 51.5142, -0.1494)
KINGS_CROSS = RawStop("940GZZLUKSX", "King's Cross St. Pancras Underground Station", 51.5308, -0.1238)


class FakeClient:
    def __init__(self, directory=(), search_results=None):
        self.directory = list(directory)
        self.search_results = search_results or {}
        self.searches = []

    async def fetch_stop_directory(self, modes=None):
        return self.directory

    async def search_stops(self, query, modes=None):
        self.searches.append(query)
        return self.search_results.get(query, [])


def make_resolver(directory=(OXFORD_CIRCUS, BOND_STREET, KINGS_CROSS), search_results=None):
    client = FakeClient(directory, search_results)
    resolver = StationResolver(client)
    asyncio.run(resolver.load_directory())
    return resolver, client


def test_normalize_station_name():
    assert normalize_station_name("Oxford Circus Underground Station") == "oxford circus"
    assert normalize_station_name("  Bond Street Station ") == "bond street"
    assert normalize_station_name("BANK") == "bank"
    assert normalize_station_name("") == ""
    assert normalize_station_name(None) == ""


def test_load_directory_indexes_normalized_names():
    resolver, _ = make_resolver()
    assert len(resolver.index) == 3
    assert resolver.index.get("oxford circus").stop_id == "940GZZLUOXC"


def test_equivalent_names_resolve_identically():
    resolver, client = make_resolver()
    a = asyncio.run(resolver.resolve("Oxford Circus Underground Station"))
    b = asyncio.run(resolver.resolve("oxford circus"))
    c = asyncio.run(resolver.resolve("OXFORD CIRCUS station"))
    assert a == b == c == "940GZZLUOXC"
    assert client.searches == []


def test_substring_match():
    resolver, client = make_resolver()
    assert asyncio.run(resolver.resolve("King's Cross")) == "940GZZLUKSX"
    assert asyncio.run(resolver.resolve("Bond")) == "940GZZLUBND"


def test_live_search_result_is_cached():
    bank = RawStop("940GZZLUBNK", "Bank Underground Station", 51.5133, -0.0886)
    resolver, client = make_resolver(search_results={"Bank": [bank]})

    assert asyncio.run(resolver.resolve("Bank")) == "940GZZLUBNK"
    assert asyncio.run(resolver.resolve("bank")) == "940GZZLUBNK"
    assert client.searches == ["Bank"]


def test_unknown_station_is_none():
    resolver, client = make_resolver()
    assert asyncio.run(resolver.resolve("Hogsmeade")) is None
    assert client.searches == ["Hogsmeade"]


def test_empty_name_skips_lookup():
    resolver, client = make_resolver()
    assert asyncio.run(resolver.resolve("")) is None
    assert asyncio.run(resolver.resolve("   ")) is None
    assert client.searches == []


def test_nearest_station():
    resolver, _ = make_resolver()
    entry = resolver.index.nearest(51.5150, -0.1420)
    assert entry.stop_id == "940GZZLUOXC"


def test_nearest_skips_entries_without_coordinates():
    index = StationIndex()
    asyncio.run(index.put("nowhere", StationEntry("X", "Nowhere")))
    assert index.nearest(51.5, -0.1) is None


def test_concurrent_writes_all_land():
    index = StationIndex()

    async def fill():
        await asyncio.gather(*(
            index.put(f"station {i}", StationEntry(str(i), f"Station {i}")) for i in range(50)
        ))

    asyncio.run(fill())
    assert len(index) == 50
