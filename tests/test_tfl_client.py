"""Tests for the TfL client, using httpx.MockTransport for canned responses."""

import asyncio
import datetime

import httpx

from trainpace.core.tfl_client import (
    TflClient,
    line_id_for_name,
    parse_expected_arrival,
)

OXFORD_CIRCUS = "940GZZLUOXC"


def make_client(routes: dict, calls: list | None = None) -> TflClient:
    """Client whose transport answers from `routes` (path -> response or callable)."""

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        route = routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"message": "not found"})
        if callable(route):
            return route(request)
        return httpx.Response(200, json=route)

    return TflClient(transport=httpx.MockTransport(handler), retry_backoff=[0, 0, 0])


def run(coro):
    return asyncio.run(coro)


def test_parse_expected_arrival_formats():
    strict = parse_expected_arrival("2025-03-15T14:32:10.5Z")
    legacy = parse_expected_arrival("2025-03-15T14:32:10Z")
    assert strict == datetime.datetime(2025, 3, 15, 14, 32, 10, 500000, tzinfo=datetime.timezone.utc)
    assert legacy == datetime.datetime(2025, 3, 15, 14, 32, 10, tzinfo=datetime.timezone.utc)


def test_parse_expected_arrival_converts_offsets_to_utc():
    parsed = parse_expected_arrival("2025-06-15T15:32:10+01:00")
    assert parsed == datetime.datetime(2025, 6, 15, 14, 32, 10, tzinfo=datetime.timezone.utc)


def test_parse_expected_arrival_rejects_garbage():
    assert parse_expected_arrival("") is None
    assert parse_expected_arrival(None) is None
    assert parse_expected_arrival("soon") is None
    assert parse_expected_arrival("2025-03-15 14:32") is None
    # No timezone
    assert parse_expected_arrival("2025-03-15T14:32:10") is None


def test_fetch_line_arrivals_drops_bad_records():
    payload = [
        {
            "id": "-1234",
            "lineId": "victoria",
            "lineName": "Victoria",
            "stationName": "Oxford Circus Underground Station",
            "platformName": "Southbound - Platform 5",
            "destinationName": "Brixton Underground Station",
            "expectedArrival": "2025-03-15T14:32:10Z",
            "timeToStation": 130,
        },
        {"lineId": "victoria", "expectedArrival": "not a time"},
        {"lineId": "victoria", "destinationName": "Walthamstow Central", "expectedArrival": "2025-03-15T14:35:00.123Z"},
    ]
    client = make_client({f"/Line/victoria/Arrivals/{OXFORD_CIRCUS}": payload})

    predictions = run(client.fetch_line_arrivals("victoria", OXFORD_CIRCUS))
    assert len(predictions) == 2
    first = predictions[0]
    assert first.id == "-1234"
    assert first.platform_name == "Southbound - Platform 5"
    assert first.time_to_station == 130.0
    assert first.expected_arrival.tzinfo is not None
    assert predictions[1].destination_name == "Walthamstow Central"


def test_fetch_line_arrivals_none_on_failure():
    client = make_client({})
    assert run(client.fetch_line_arrivals("victoria", OXFORD_CIRCUS)) is None


def test_fetch_lines_for_stop():
    client = make_client({
        f"/StopPoint/{OXFORD_CIRCUS}": {
            "commonName": "Oxford Circus Underground Station",
            "lines": [{"id": "bakerloo"}, {"id": "central"}, {"id": "victoria"}, {"name": "no id"}],
        },
    })
    assert run(client.fetch_lines_for_stop(OXFORD_CIRCUS)) == ["bakerloo", "central", "victoria"]


def test_fetch_lines_for_unknown_stop_is_none():
    calls = []
    client = make_client({}, calls)
    assert run(client.fetch_lines_for_stop("nope")) is None
    # 404 is not retried
    assert len(calls) == 1


def test_server_errors_are_retried():
    attempts = []

    def flaky(request):
        attempts.append(request)
        if len(attempts) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"lines": [{"id": "jubilee"}]})

    client = make_client({"/StopPoint/940GZZLUBND": flaky})
    assert run(client.fetch_lines_for_stop("940GZZLUBND")) == ["jubilee"]
    assert len(attempts) == 3


def test_connection_errors_give_up_after_retries():
    attempts = []

    def down(request):
        attempts.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client({"/StopPoint/940GZZLUBND": down})
    assert run(client.fetch_lines_for_stop("940GZZLUBND")) is None
    assert len(attempts) == 4


def test_search_stops():
    calls = []
    client = make_client({
        "/StopPoint/Search": {
            "query": "bond",
            "matches": [
                {"id": "940GZZLUBND", "name": "Bond Street Underground Station", "lat": 51.5142, "lon": -0.1494},
                {"name": "missing id"},
            ],
        },
    }, calls)

    matches = run(client.search_stops("bond"))
    assert len(matches) == 1
    assert matches[0].id == "940GZZLUBND"
    assert matches[0].lat == 51.5142
    assert calls[0].url.params["query"] == "bond"
    assert calls[0].url.params["modes"] == "tube"


def test_fetch_stop_directory():
    client = make_client({
        "/StopPoint/Mode/tube": {
            "stopPoints": [
                {"naptanId": OXFORD_CIRCUS, "commonName": "Oxford Circus Underground Station", "lat": 51.5152, "lon": -0.1418},
                {"naptanId": "940GZZLUBND", "commonName": "Bond Street Underground Station"},
                {"commonName": "No Id"},
            ],
        },
    })
    stops = run(client.fetch_stop_directory())
    assert [s.id for s in stops] == [OXFORD_CIRCUS, "940GZZLUBND"]
    assert stops[1].lat is None


def test_fetch_line_status():
    client = make_client({
        "/Line/central/Status": [{
            "id": "central",
            "name": "Central",
            "lineStatuses": [
                {"statusSeverity": 9, "statusSeverityDescription": "Minor Delays", "reason": "Signal failure"},
            ],
        }],
    })
    status = run(client.fetch_line_status("central"))
    assert status.name == "Central"
    assert status.statuses[0].severity == 9
    assert status.statuses[0].description == "Minor Delays"
    assert status.statuses[0].reason == "Signal failure"


def test_line_id_for_name():
    assert line_id_for_name("Hammersmith & City") == "hammersmith-city"
    assert line_id_for_name("victoria") == "victoria"
    assert line_id_for_name(" Elizabeth line ") == "elizabeth"
    assert line_id_for_name("Thameslink") is None
    assert line_id_for_name("") is None
