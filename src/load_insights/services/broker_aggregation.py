"""Broker aggregation: derive CRM broker rows from an account's loads.

One broker per lowercased ``broker_email``. The sync owns the aggregate
columns only; ``status`` and ``notes`` belong to the user and are never
written here, so re-running the sync is safe and idempotent.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime

from dateutil import parser as date_parser
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from load_insights.domain.models import Broker
from load_insights.domain.schemas import LoadRecord, parse_miles
from load_insights.services.reconciliation import list_loads

logger = logging.getLogger(__name__)

# Month and day defaults that differ; a string that parses to different
# dates under them is missing its month or day
_DEFAULT_MONTH_DAYS = ((1, 1), (2, 2))


@dataclass
class BrokerAggregate:
    broker_email: str
    broker_name: str
    broker_phone: str
    total_loads: int
    total_revenue: float
    avg_rate: float
    avg_rpm: float | None
    first_load_date: date | None
    last_load_date: date | None


@dataclass
class AggregationResult:
    synced: int = 0
    updated: int = 0
    failed: int = 0


def _parse_complete(text: str, year: int) -> date | None:
    parsed = {
        date_parser.parse(text, default=datetime(year, month, day), dayfirst=False, fuzzy=True).date()
        for month, day in _DEFAULT_MONTH_DAYS
    }
    return parsed.pop() if len(parsed) == 1 else None


def parse_stop_date(value: str) -> date | None:
    """Best-effort parse of a stop date string. None when unparseable.

    Rate confirmations write dates with times, windows and weekdays around
    them ("Monday 10/12/2026 0800-1400"). When the whole string does not
    parse, trailing words are dropped one at a time until it does.
    """
    words = (value or "").split()
    year = date.today().year
    while words:
        try:
            return _parse_complete(" ".join(words), year)
        except (ValueError, OverflowError):
            words.pop()
    return None
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def earliest_pickup_date(load: LoadRecord) -> date | None:
    dates = [d for d in (parse_stop_date(s.date) for s in load.pickups()) if d]
    return min(dates) if dates else None


def _first_present(loads: list[LoadRecord], attr: str) -> str:
    for load in loads:
        value = (getattr(load, attr) or "").strip()
        if value:
            return value
    return ""


def compute_broker_aggregates(loads: list[LoadRecord]) -> list[BrokerAggregate]:
    """Group loads by broker email and compute per-broker statistics.

    Loads without both a broker name and email are ignored. The RPM average
    only covers loads with a positive parsed mileage.
    """
    groups: dict[str, list[LoadRecord]] = {}
    for load in loads:
        if load.broker_name.strip() and load.broker_email.strip():
            groups.setdefault(load.broker_email.strip().lower(), []).append(load)

    aggregates = []
    for email, group in groups.items():
        total_revenue = sum(load.rate_total for load in group)
        total_loads = len(group)

        rpms = []
        for load in group:
            miles = parse_miles(load.miles)
            if miles > 0:
                rpms.append(load.rate_total / miles)

        dates = [d for d in (earliest_pickup_date(load) for load in group) if d]

        aggregates.append(BrokerAggregate(
            broker_email=email,
            broker_name=_first_present(group, "broker_name"),
            broker_phone=_first_present(group, "broker_phone"),
            total_loads=total_loads,
            total_revenue=total_revenue,
            avg_rate=total_revenue / total_loads,
            avg_rpm=sum(rpms) / len(rpms) if rpms else None,
            first_load_date=min(dates) if dates else None,
            last_load_date=max(dates) if dates else None,
        ))
    return aggregates


def _apply_aggregate(broker: Broker, agg: BrokerAggregate) -> None:
    # status and notes are intentionally absent
    broker.broker_name = agg.broker_name
    broker.broker_phone = agg.broker_phone
    broker.total_loads = agg.total_loads
    broker.total_revenue = agg.total_revenue
    broker.avg_rate = agg.avg_rate
    broker.avg_rpm = agg.avg_rpm
    broker.first_load_date = agg.first_load_date
    broker.last_load_date = agg.last_load_date


async def sync_brokers(
    db: AsyncSession,
    account: str,
    loads: list[LoadRecord] | None = None,
) -> AggregationResult:
    """Recompute and upsert every broker for ``account``.

    Each broker is written inside its own savepoint; a failure on one broker
    is logged and counted, and the rest still sync.
    """
    if loads is None:
        loads = await list_loads(db, account)

    aggregates = compute_broker_aggregates(loads)
    logger.info("[CRM Sync] %s: %d load(s), %d broker(s)", account, len(loads), len(aggregates))

    result = await db.execute(select(Broker).where(Broker.account == account))
    existing = {b.broker_email.lower(): b for b in result.scalars().all()}

    outcome = AggregationResult()
    for agg in aggregates:
        try:
            async with db.begin_nested():
                broker = existing.get(agg.broker_email)
                if broker is None:
                    broker = Broker(account=account, broker_email=agg.broker_email, status="active")
                    _apply_aggregate(broker, agg)
                    db.add(broker)
                    await db.flush()
                    existing[agg.broker_email] = broker
                else:
                    _apply_aggregate(broker, agg)
                    await db.flush()
                    outcome.updated += 1
            outcome.synced += 1
        except SQLAlchemyError as exc:
            outcome.failed += 1
            existing.pop(agg.broker_email, None)
            logger.error("[CRM Sync] Failed to upsert broker %s: %s", agg.broker_email, exc)

    await db.commit()
    logger.info(
        "[CRM Sync] %s complete: synced=%d updated=%d failed=%d",
        account, outcome.synced, outcome.updated, outcome.failed,
    )
    return outcome
