"""SQLAlchemy ORM models for Load Insights.

Every table is partitioned by ``account`` (the authenticated user's email or
the ``default`` sentinel). All queries filter on it.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- JSON for structured data (no JSONB)
- DateTime for timestamps (no TIMESTAMPTZ)
"""

import uuid

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from load_insights.infra.database import Base


# ---------------------------------------------------------------------------
# Loads
# ---------------------------------------------------------------------------


class Load(Base):
    """Canonical shipment record extracted from a rate confirmation."""

    __tablename__ = "loads"
    __table_args__ = (
        UniqueConstraint("account", "load_id", name="uq_loads_account_load_id"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    account = Column(String(255), nullable=False, index=True)
    # NULL for legacy rows without a reference; those never deduplicate
    load_id = Column(String(100), nullable=True)

    broker_name = Column(String(255), default="")
    broker_email = Column(String(255), default="")
    broker_phone = Column(String(50), default="")
    carrier_name = Column(String(255), default="")
    carrier_mc = Column(String(50), default="")
    carrier_email = Column(String(255), default="")
    carrier_phone = Column(String(50), default="")
    carrier_address = Column(String(500), default="")

    rate_total = Column(Float, default=0.0)
    linehaul_rate = Column(Float, default=0.0)
    accessorials = Column(JSON, default=list)
    rpm = Column(Float, nullable=True)

    stops = Column(JSON, default=list)
    miles = Column(String(20), default="")

    equipment_type = Column(String(100), default="")
    temp_min = Column(String(20), default="")
    temp_max = Column(String(20), default="")
    commodity = Column(String(255), default="")
    weight = Column(String(50), default="")
    notes = Column(Text, default="")

    source_file = Column(String(500), default="")
    source_channel = Column(String(20), default="")
    extracted_at = Column(String(40), default="")

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


# ---------------------------------------------------------------------------
# CRM
# ---------------------------------------------------------------------------


class Broker(Base):
    """Broker profile materialized from the account's loads.

    Aggregate columns are owned by the broker sync; ``status`` and ``notes``
    are owned by the user and never written by the sync.
    """

    __tablename__ = "brokers"
    __table_args__ = (
        UniqueConstraint("account", "broker_email", name="uq_brokers_account_email"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    account = Column(String(255), nullable=False, index=True)
    broker_name = Column(String(255), nullable=False)
    broker_email = Column(String(255), nullable=False)
    broker_phone = Column(String(50), default="")
    first_load_date = Column(Date, nullable=True)
    last_load_date = Column(Date, nullable=True)
    total_loads = Column(Integer, default=0)
    total_revenue = Column(Float, default=0.0)
    avg_rate = Column(Float, default=0.0)
    avg_rpm = Column(Float, nullable=True)  # NULL when no load has usable miles
    status = Column(String(20), nullable=False, default="active")  # active, inactive, prospect
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    interactions = relationship(
        "BrokerInteraction", back_populates="broker", cascade="all, delete-orphan"
    )
    tasks = relationship("BrokerTask", back_populates="broker", cascade="all, delete-orphan")


class BrokerInteraction(Base):
    """Timestamped touchpoint (email, call, meeting, note) with a broker."""

    __tablename__ = "broker_interactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    account = Column(String(255), nullable=False, index=True)
    broker_id = Column(String(36), ForeignKey("brokers.id"), nullable=False, index=True)
    interaction_type = Column(String(20), nullable=False)
    subject = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    interaction_date = Column(DateTime, nullable=False, default=func.now())
    created_at = Column(DateTime, default=func.now())

    broker = relationship("Broker", back_populates="interactions")


class BrokerTask(Base):
    """Follow-up task attached to a broker."""

    __tablename__ = "broker_tasks"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    account = Column(String(255), nullable=False, index=True)
    broker_id = Column(String(36), ForeignKey("brokers.id"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    due_date = Column(DateTime, nullable=True)
    status = Column(String(20), nullable=False, default="pending")  # pending, completed, cancelled
    priority = Column(String(10), nullable=False, default="medium")  # low, medium, high
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    broker = relationship("Broker", back_populates="tasks")
