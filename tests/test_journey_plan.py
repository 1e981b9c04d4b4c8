"""Tests for JourneyPlan leg boundaries and phase ordering."""

import datetime

import pytest

from trainpace.core.geo import LatLon
from trainpace.core.journey_plan import (
    FINISHED,
    STATION_TO_PLATFORM,
    WALK_TO_STATION,
    JourneyPlan,
    ProgressPhase,
)

ARRIVAL = datetime.datetime(2025, 3, 15, 14, 40, 0, tzinfo=datetime.timezone.utc)


def make_plan(walk=60.0, platform=30.0, transfers=()) -> JourneyPlan:
    return JourneyPlan(
        walk_to_station_seconds=walk,
        station_to_platform_seconds=platform,
        transfer_seconds=tuple(transfers),
        target_arrival=ARRIVAL,
    )


def test_total_is_sum_of_legs():
    assert make_plan(60, 30, (40, 20)).total_seconds == 150
    assert make_plan(0, 0).total_seconds == 0


def test_negative_legs_clamped():
    plan = make_plan(-5, 30, (-10, 20))
    assert plan.walk_to_station_seconds == 0
    assert plan.transfer_seconds == (0, 20)
    assert plan.total_seconds == 50


def test_locate_walks_boundaries_in_order():
    plan = make_plan(60, 30, (40, 20))
    assert plan.locate(0) == (WALK_TO_STATION, 0.0)
    assert plan.locate(30) == (WALK_TO_STATION, 0.5)
    assert plan.locate(60) == (STATION_TO_PLATFORM, 0.0)
    phase, fraction = plan.locate(75)
    assert phase == STATION_TO_PLATFORM and fraction == pytest.approx(0.5)
    assert plan.locate(90) == (ProgressPhase.transfer(0), 0.0)
    phase, fraction = plan.locate(120)
    assert phase == ProgressPhase.transfer(0) and fraction == pytest.approx(0.75)
    assert plan.locate(140) == (ProgressPhase.transfer(1), 0.5)
    assert plan.locate(150) == (FINISHED, 1.0)
    assert plan.locate(1000) == (FINISHED, 1.0)


def test_zero_length_legs_fall_through():
    plan = make_plan(0, 0, (0, 10))
    assert plan.locate(0) == (ProgressPhase.transfer(1), 0.0)
    assert make_plan(0, 0).locate(0) == (FINISHED, 1.0)


def test_phases_ordered_in_traversal_order():
    ordered = [
        WALK_TO_STATION,
        STATION_TO_PLATFORM,
        ProgressPhase.transfer(0),
        ProgressPhase.transfer(1),
        FINISHED,
    ]
    assert sorted(reversed(ordered)) == ordered
    assert ProgressPhase.transfer(1).label == "transfer_walk_1"
    assert FINISHED.label == "finished"


def test_phase_start_seconds():
    plan = make_plan(60, 30, (40, 20))
    assert plan.phase_start_seconds(WALK_TO_STATION) == 0
    assert plan.phase_start_seconds(STATION_TO_PLATFORM) == 60
    assert plan.phase_start_seconds(ProgressPhase.transfer(1)) == 130
    assert plan.phase_start_seconds(FINISHED) == 150


def test_total_distance_needs_both_locations():
    assert make_plan().total_distance_m is None
    plan = JourneyPlan(
        walk_to_station_seconds=60,
        station_to_platform_seconds=30,
        target_arrival=ARRIVAL,
        origin_location=LatLon(51.5150, -0.1420),
        station_location=LatLon(51.5160, -0.1420),
    )
    # 0.001 deg latitude ~ 111m
    assert 100 < plan.total_distance_m < 120
