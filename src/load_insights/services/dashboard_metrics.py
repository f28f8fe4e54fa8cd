"""Dashboard KPIs computed from an account's loads.

Every metric is None when it cannot be computed from the data (no loads in
range, no mileage, no complete lanes), so the UI can render "missing data"
instead of a misleading zero.
"""

from dataclasses import asdict, dataclass
from datetime import date, timedelta

from load_insights.domain.enums import TimeRange
from load_insights.domain.schemas import LoadRecord, parse_miles
from load_insights.services.broker_aggregation import parse_stop_date
from load_insights.services.distance_service import route_endpoints


@dataclass
class Lane:
    origin: str
    destination: str
    revenue: float


@dataclass
class DashboardMetrics:
    totalLoads: int | None = None
    totalRevenue: float | None = None
    avgRpm: float | None = None
    activeBrokers: int | None = None
    weeklyRevenue: list[float] | None = None
    topLane: Lane | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def first_pickup_date(load: LoadRecord) -> date | None:
    pickups = load.pickups()
    if not pickups:
        return None
    return parse_stop_date(pickups[0].date)


def filter_by_range(loads: list[LoadRecord], time_range: TimeRange, today: date) -> list[LoadRecord]:
    """Loads whose first pickup falls inside the range. Undated loads are excluded."""
    start = time_range.start_date(today)
    kept = []
    for load in loads:
        picked_up = first_pickup_date(load)
        if picked_up and start <= picked_up <= today:
            kept.append(load)
    return kept


def _weekly_revenue(loads: list[LoadRecord], today: date) -> list[float]:
    """Revenue per day for the last 7 days, oldest first."""
    days = [today - timedelta(days=6 - i) for i in range(7)]
    totals = {day: 0.0 for day in days}
    for load in loads:
        picked_up = first_pickup_date(load)
        if picked_up in totals:
            totals[picked_up] += load.rate_total
    return [totals[day] for day in days]


def _top_lane(loads: list[LoadRecord]) -> Lane | None:
    lanes: dict[tuple[str, str], float] = {}
    for load in loads:
        endpoints = route_endpoints(load.stops)
        if endpoints is None:
            continue
        pickup, delivery = endpoints
        key = (f"{pickup.city}, {pickup.state}", f"{delivery.city}, {delivery.state}")
        lanes[key] = lanes.get(key, 0.0) + load.rate_total

    best = None
    for (origin, destination), revenue in lanes.items():
        if revenue > 0 and (best is None or revenue > best.revenue):
            best = Lane(origin, destination, revenue)
    return best


def compute_metrics(
    loads: list[LoadRecord],
    time_range: TimeRange = TimeRange.ONE_MONTH,
    today: date | None = None,
) -> DashboardMetrics:
    today = today or date.today()
    in_range = filter_by_range(loads, time_range, today)
    if not in_range:
        return DashboardMetrics()

    total_revenue = sum(load.rate_total for load in in_range)

    with_miles = [load for load in in_range if parse_miles(load.miles) > 0]
    avg_rpm = None
    if with_miles:
        total_miles = sum(parse_miles(load.miles) for load in with_miles)
        avg_rpm = sum(load.rate_total for load in with_miles) / total_miles

    brokers = {load.broker_name for load in in_range if load.broker_name}

    return DashboardMetrics(
        totalLoads=len(in_range),
        totalRevenue=total_revenue if total_revenue > 0 else None,
        avgRpm=avg_rpm,
        activeBrokers=len(brokers) or None,
        weeklyRevenue=_weekly_revenue(in_range, today),
        topLane=_top_lane(in_range),
    )
