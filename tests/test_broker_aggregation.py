"""Tests for broker aggregation: grouping, RPM averaging and the CRM upsert."""

from datetime import date
from unittest.mock import patch

import pytest
from sqlalchemy import select

from load_insights.domain.models import Broker
from load_insights.services import broker_aggregation
from load_insights.services.broker_aggregation import (
    compute_broker_aggregates,
    parse_stop_date,
    sync_brokers,
)
from load_insights.services.reconciliation import reconcile_loads

ACCOUNT = "a@x.com"


def _stops(pickup_date: str) -> list[dict]:
    return [
        {"type": "pickup", "city": "Dallas", "state": "TX", "date": pickup_date},
        {"type": "delivery", "city": "Atlanta", "state": "GA", "date": "2026-12-31"},
    ]


def _null_name_for(email: str):
    """Wrap _apply_aggregate so one broker violates the NOT NULL on broker_name."""
    original = broker_aggregation._apply_aggregate

    def _apply(broker, agg):
        original(broker, agg)
        if agg.broker_email == email:
            broker.broker_name = None

    return _apply


# ---------------------------------------------------------------------------
# Pure aggregation
# ---------------------------------------------------------------------------


class TestParseStopDate:

    @pytest.mark.parametrize("raw,expected", [
        ("2026-03-05", date(2026, 3, 5)),
        ("2026-03-05T08:00:00", date(2026, 3, 5)),
        ("03/05/2026", date(2026, 3, 5)),
        ("3/5/26", date(2026, 3, 5)),
        ("Mar 5, 2026", date(2026, 3, 5)),
    ])
    def test_known_formats(self, raw, expected):
        assert parse_stop_date(raw) == expected

    @pytest.mark.parametrize("raw", [
        "10/12/2026 08:00",
        "Oct 12th, 2026",
        "Monday 10/12/2026",
        "10/12/2026 0800-1400",
        "Mon, Oct 12, 2026 FCFS",
    ])
    def test_dates_with_surrounding_text(self, raw):
        assert parse_stop_date(raw) == date(2026, 10, 12)

    @pytest.mark.parametrize("raw", ["08:00", "Monday", "2026", "12 pallets"])
    def test_missing_month_or_day_is_none(self, raw):
        assert parse_stop_date(raw) is None

    @pytest.mark.parametrize("raw", ["", "TBD", "ASAP", "13/45/2026"])
    def test_unparseable_is_none(self, raw):
        assert parse_stop_date(raw) is None


class TestComputeAggregates:

    def test_rpm_excludes_loads_without_miles(self, make_load):
        loads = [
            make_load(load_id="1", rate_total=1000, miles="500"),   # 2.0
            make_load(load_id="2", rate_total=3000, miles="1000"),  # 3.0
            make_load(load_id="3", rate_total=5000, miles=""),
        ]

        [agg] = compute_broker_aggregates(loads)

        assert agg.total_loads == 3
        assert agg.total_revenue == 9000
        assert agg.avg_rate == 3000
        assert agg.avg_rpm == pytest.approx(2.5)

    def test_no_miles_leaves_rpm_missing(self, make_load):
        [agg] = compute_broker_aggregates([make_load(miles="")])
        assert agg.avg_rpm is None

    def test_grouped_by_lowercased_email(self, make_load):
        loads = [
            make_load(load_id="1", broker_email="Dispatch@Acme.com"),
            make_load(load_id="2", broker_email="dispatch@acme.com"),
            make_load(load_id="3", broker_email="ops@other.com", broker_name="Other"),
        ]

        aggregates = {a.broker_email: a for a in compute_broker_aggregates(loads)}

        assert set(aggregates) == {"dispatch@acme.com", "ops@other.com"}
        assert aggregates["dispatch@acme.com"].total_loads == 2

    def test_loads_without_broker_identity_ignored(self, make_load):
        loads = [make_load(broker_email=""), make_load(broker_name="")]
        assert compute_broker_aggregates(loads) == []

    def test_dates_use_earliest_pickup_and_skip_invalid(self, make_load):
        loads = [
            make_load(load_id="1", stops=_stops("2026-02-10")),
            make_load(load_id="2", stops=_stops("TBD")),
            make_load(load_id="3", stops=_stops("05/20/2026")),
        ]

        [agg] = compute_broker_aggregates(loads)

        assert agg.first_load_date == date(2026, 2, 10)
        assert agg.last_load_date == date(2026, 5, 20)

    def test_phone_from_first_load_that_has_one(self, make_load):
        loads = [make_load(load_id="1", broker_phone=""), make_load(load_id="2", broker_phone="555-9999")]
        [agg] = compute_broker_aggregates(loads)
        assert agg.broker_phone == "555-9999"


# ---------------------------------------------------------------------------
# Upsert
# ---------------------------------------------------------------------------


class TestSyncBrokers:

    async def test_creates_brokers_from_loads(self, db_session, make_load):
        await reconcile_loads(db_session, ACCOUNT, [
            make_load(load_id="1", rate_total=1000, miles="500"),
            make_load(load_id="2", rate_total=2000, miles="500"),
        ])

        result = await sync_brokers(db_session, ACCOUNT)

        assert (result.synced, result.updated, result.failed) == (1, 0, 0)
        broker = (await db_session.execute(select(Broker))).scalar_one()
        assert broker.account == ACCOUNT
        assert broker.broker_email == "dispatch@acme.com"
        assert broker.total_loads == 2
        assert broker.total_revenue == 3000
        assert broker.avg_rpm == pytest.approx(3.0)
        assert broker.status == "active"

    async def test_resync_preserves_status_and_notes(self, db_session, make_load):
        await reconcile_loads(db_session, ACCOUNT, [make_load(load_id="1")])
        await sync_brokers(db_session, ACCOUNT)

        broker = (await db_session.execute(select(Broker))).scalar_one()
        broker.status = "prospect"
        broker.notes = "Prefers email"
        await db_session.commit()

        await reconcile_loads(db_session, ACCOUNT, [make_load(load_id="2", rate_total=500)])
        result = await sync_brokers(db_session, ACCOUNT)

        assert result.updated == 1
        broker = (await db_session.execute(select(Broker))).scalar_one()
        assert broker.status == "prospect"
        assert broker.notes == "Prefers email"
        assert broker.total_loads == 2

    async def test_idempotent(self, db_session, make_load):
        await reconcile_loads(db_session, ACCOUNT, [
            make_load(load_id="1", miles="100"),
            make_load(load_id="2", broker_email="ops@other.com", broker_name="Other"),
        ])

        await sync_brokers(db_session, ACCOUNT)
        first = {
            b.broker_email: (b.total_loads, b.total_revenue, b.avg_rate, b.avg_rpm,
                             b.first_load_date, b.last_load_date)
            for b in (await db_session.execute(select(Broker))).scalars()
        }
        await sync_brokers(db_session, ACCOUNT)
        second = {
            b.broker_email: (b.total_loads, b.total_revenue, b.avg_rate, b.avg_rpm,
                             b.first_load_date, b.last_load_date)
            for b in (await db_session.execute(select(Broker))).scalars()
        }

        assert first == second
        assert len(second) == 2

    async def test_other_accounts_untouched(self, db_session, make_load):
        await reconcile_loads(db_session, "b@x.com", [make_load(load_id="1")])

        result = await sync_brokers(db_session, ACCOUNT)

        assert result.synced == 0
        assert (await db_session.execute(select(Broker))).scalars().all() == []

    async def test_failed_insert_does_not_abort_others(self, db_session, make_load, caplog):
        await reconcile_loads(db_session, ACCOUNT, [
            make_load(load_id="1"),
            make_load(load_id="2", broker_email="ops@other.com", broker_name="Other"),
        ])

        with patch.object(broker_aggregation, "_apply_aggregate", _null_name_for("dispatch@acme.com")):
            result = await sync_brokers(db_session, ACCOUNT)

        assert (result.synced, result.updated, result.failed) == (1, 0, 1)
        brokers = (await db_session.execute(select(Broker))).scalars().all()
        assert [b.broker_email for b in brokers] == ["ops@other.com"]
        assert "Failed to upsert broker dispatch@acme.com" in caplog.text

    async def test_failed_update_does_not_abort_others(self, db_session, make_load):
        await reconcile_loads(db_session, ACCOUNT, [
            make_load(load_id="1"),
            make_load(load_id="2", broker_email="ops@other.com", broker_name="Other"),
        ])
        await sync_brokers(db_session, ACCOUNT)
        await reconcile_loads(db_session, ACCOUNT, [
            make_load(load_id="3"),
            make_load(load_id="4", broker_email="ops@other.com", broker_name="Other"),
        ])

        with patch.object(broker_aggregation, "_apply_aggregate", _null_name_for("ops@other.com")):
            result = await sync_brokers(db_session, ACCOUNT)

        assert (result.synced, result.updated, result.failed) == (1, 1, 1)
        totals = {
            b.broker_email: (b.broker_name, b.total_loads)
            for b in (await db_session.execute(
                select(Broker).execution_options(populate_existing=True)
            )).scalars()
        }
        assert totals == {
            "dispatch@acme.com": ("Acme Logistics", 2),
            "ops@other.com": ("Other", 1),
        }
