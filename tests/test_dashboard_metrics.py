"""Tests for dashboard KPIs."""

from datetime import date

import pytest

from load_insights.domain.enums import TimeRange
from load_insights.services.dashboard_metrics import Lane, compute_metrics, filter_by_range

TODAY = date(2026, 10, 19)


def _route(origin: tuple[str, str], dest: tuple[str, str], pickup_date: str) -> list[dict]:
    return [
        {"type": "pickup", "city": origin[0], "state": origin[1], "date": pickup_date},
        {"type": "delivery", "city": dest[0], "state": dest[1]},
    ]


def test_no_loads_all_missing():
    metrics = compute_metrics([], TimeRange.ONE_MONTH, TODAY)
    assert metrics.to_dict() == {
        "totalLoads": None,
        "totalRevenue": None,
        "avgRpm": None,
        "activeBrokers": None,
        "weeklyRevenue": None,
        "topLane": None,
    }


def test_loads_outside_range_count_as_empty(make_load):
    old = make_load(stops=_route(("Dallas", "TX"), ("Atlanta", "GA"), "2026-01-02"))
    assert compute_metrics([old], TimeRange.ONE_MONTH, TODAY).totalLoads is None


def test_range_filter_excludes_undated_and_future(make_load):
    loads = [
        make_load(load_id="in", stops=_route(("A", "TX"), ("B", "GA"), "2026-10-01")),
        make_load(load_id="undated", stops=_route(("A", "TX"), ("B", "GA"), "TBD")),
        make_load(load_id="future", stops=_route(("A", "TX"), ("B", "GA"), "2026-11-01")),
        make_load(load_id="old", stops=_route(("A", "TX"), ("B", "GA"), "2026-05-01")),
    ]

    assert [l.load_id for l in filter_by_range(loads, TimeRange.ONE_MONTH, TODAY)] == ["in"]
    assert {l.load_id for l in filter_by_range(loads, TimeRange.SIX_MONTHS, TODAY)} == {"in", "old"}


def test_totals_and_rpm(make_load):
    loads = [
        make_load(load_id="1", rate_total=1000, miles="500", broker_name="Acme",
                  stops=_route(("Dallas", "TX"), ("Atlanta", "GA"), "2026-10-15")),
        make_load(load_id="2", rate_total=3000, miles="1000", broker_name="Acme",
                  stops=_route(("Dallas", "TX"), ("Atlanta", "GA"), "2026-10-16")),
        make_load(load_id="3", rate_total=2000, miles="", broker_name="TQL",
                  stops=_route(("Fresno", "CA"), ("Denver", "CO"), "2026-10-01")),
    ]

    metrics = compute_metrics(loads, TimeRange.ONE_MONTH, TODAY)

    assert metrics.totalLoads == 3
    assert metrics.totalRevenue == 6000
    # revenue over miles, only for loads that have miles
    assert metrics.avgRpm == pytest.approx(4000 / 1500)
    assert metrics.activeBrokers == 2
    assert metrics.topLane == Lane("Dallas, TX", "Atlanta, GA", 4000)


def test_rpm_missing_without_miles(make_load):
    load = make_load(miles="", stops=_route(("A", "TX"), ("B", "GA"), "2026-10-10"))
    assert compute_metrics([load], TimeRange.ONE_MONTH, TODAY).avgRpm is None


def test_weekly_revenue_last_seven_days(make_load):
    loads = [
        make_load(load_id="1", rate_total=100, stops=_route(("A", "TX"), ("B", "GA"), "2026-10-13")),
        make_load(load_id="2", rate_total=250, stops=_route(("A", "TX"), ("B", "GA"), "2026-10-19")),
        make_load(load_id="3", rate_total=50, stops=_route(("A", "TX"), ("B", "GA"), "10/19/2026")),
        make_load(load_id="4", rate_total=999, stops=_route(("A", "TX"), ("B", "GA"), "2026-10-12")),
    ]

    weekly = compute_metrics(loads, TimeRange.ONE_MONTH, TODAY).weeklyRevenue

    assert weekly == [100, 0, 0, 0, 0, 0, 300]


def test_top_lane_needs_pickup_and_delivery(make_load):
    load = make_load(stops=[{"type": "pickup", "city": "A", "state": "TX", "date": "2026-10-10"}])

    metrics = compute_metrics([load], TimeRange.ONE_MONTH, TODAY)

    assert metrics.totalLoads == 1
    assert metrics.topLane is None
