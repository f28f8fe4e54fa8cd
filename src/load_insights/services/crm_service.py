"""Account-scoped CRUD for brokers, interactions and follow-up tasks.

Brokers themselves are created by the broker sync; this module only reads
them and applies the user's field-scoped edits.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from load_insights.domain.enums import TaskStatus
from load_insights.domain.models import Broker, BrokerInteraction, BrokerTask
from load_insights.domain.schemas import (
    BrokerUpdate,
    InteractionCreate,
    LoadRecord,
    TaskCreate,
    TaskUpdate,
)
from load_insights.services.reconciliation import list_loads

logger = logging.getLogger(__name__)

_BROKER_SORT_COLUMNS = {
    "name": Broker.broker_name,
    "revenue": Broker.total_revenue,
    "loads": Broker.total_loads,
    "lastContact": Broker.last_load_date,
}


class NotFoundError(Exception):
    """The requested row does not exist in the caller's account."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Brokers
# ---------------------------------------------------------------------------


async def list_brokers(
    db: AsyncSession,
    account: str,
    status: str | None = None,
    search: str | None = None,
    sort_by: str = "name",
    sort_order: str = "asc",
) -> list[Broker]:
    query = select(Broker).where(Broker.account == account)
    if status:
        query = query.where(Broker.status == status)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.where(or_(
            func.lower(Broker.broker_name).like(pattern),
            func.lower(Broker.broker_email).like(pattern),
        ))

    column = _BROKER_SORT_COLUMNS.get(sort_by, Broker.broker_name)
    ordering = column.asc() if sort_order == "asc" else column.desc()
    # Brokers without a date sort last in either direction
    query = query.order_by(column.is_(None), ordering)

    result = await db.execute(query)
    return list(result.scalars().all())


async def get_broker(db: AsyncSession, account: str, broker_id: str) -> Broker:
    result = await db.execute(
        select(Broker).where(Broker.account == account, Broker.id == broker_id)
    )
    broker = result.scalar_one_or_none()
    if broker is None:
        raise NotFoundError("Broker not found")
    return broker


async def broker_loads(db: AsyncSession, account: str, broker: Broker) -> list[LoadRecord]:
    email = broker.broker_email.lower()
    return [
        load for load in await list_loads(db, account)
        if load.broker_email.strip().lower() == email
    ]


async def update_broker(
    db: AsyncSession, account: str, broker_id: str, update: BrokerUpdate
) -> Broker:
    """Apply only the fields the caller sent. Aggregates are not editable."""
    broker = await get_broker(db, account, broker_id)
    changes = update.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if field in ("broker_name", "status") and value is None:
            continue  # NOT NULL columns
        if field == "status":
            value = value.value if hasattr(value, "value") else value
        setattr(broker, field, value)
    await db.commit()
    await db.refresh(broker)
    logger.info("Updated broker %s fields: %s", broker_id, ", ".join(changes) or "none")
    return broker


# ---------------------------------------------------------------------------
# Interactions
# ---------------------------------------------------------------------------


async def list_interactions(
    db: AsyncSession, account: str, broker_id: str | None = None
) -> list[BrokerInteraction]:
    query = select(BrokerInteraction).where(BrokerInteraction.account == account)
    if broker_id:
        query = query.where(BrokerInteraction.broker_id == broker_id)
    result = await db.execute(query.order_by(BrokerInteraction.interaction_date.desc()))
    return list(result.scalars().all())


async def create_interaction(
    db: AsyncSession, account: str, body: InteractionCreate
) -> BrokerInteraction:
    await get_broker(db, account, body.broker_id)
    interaction = BrokerInteraction(
        account=account,
        broker_id=body.broker_id,
        interaction_type=body.interaction_type.value,
        subject=body.subject,
        notes=body.notes,
        interaction_date=body.interaction_date or _utcnow(),
    )
    db.add(interaction)
    await db.commit()
    await db.refresh(interaction)
    return interaction


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


async def list_tasks(
    db: AsyncSession,
    account: str,
    broker_id: str | None = None,
    status: str | None = None,
    priority: str | None = None,
    overdue: bool = False,
) -> list[BrokerTask]:
    query = select(BrokerTask).where(BrokerTask.account == account)
    if broker_id:
        query = query.where(BrokerTask.broker_id == broker_id)
    if status:
        query = query.where(BrokerTask.status == status)
    if priority:
        query = query.where(BrokerTask.priority == priority)
    if overdue:
        query = query.where(
            BrokerTask.due_date < _utcnow(),
            BrokerTask.status == TaskStatus.PENDING.value,
        )
    query = query.order_by(BrokerTask.due_date.is_(None), BrokerTask.due_date.asc())
    result = await db.execute(query)
    return list(result.scalars().all())


async def create_task(db: AsyncSession, account: str, body: TaskCreate) -> BrokerTask:
    await get_broker(db, account, body.broker_id)
    task = BrokerTask(
        account=account,
        broker_id=body.broker_id,
        title=body.title,
        description=body.description,
        due_date=body.due_date,
        priority=body.priority.value,
        status=body.status.value,
    )
    if body.status == TaskStatus.COMPLETED:
        task.completed_at = _utcnow()
    db.add(task)
    await db.commit()
    await db.refresh(task)
    return task


async def update_task(db: AsyncSession, account: str, body: TaskUpdate) -> BrokerTask:
    """Partial update. Completing a task stamps ``completed_at``."""
    result = await db.execute(
        select(BrokerTask).where(BrokerTask.account == account, BrokerTask.id == body.task_id)
    )
    task = result.scalar_one_or_none()
    if task is None:
        raise NotFoundError("Task not found")

    changes = body.model_dump(exclude_unset=True, exclude={"task_id"})
    for field, value in changes.items():
        if field in ("status", "priority") and value is not None:
            value = value.value if hasattr(value, "value") else value
        setattr(task, field, value)

    if body.status == TaskStatus.COMPLETED and "completed_at" not in changes:
        task.completed_at = _utcnow()
    elif body.status is not None and body.status != TaskStatus.COMPLETED:
        task.completed_at = None

    await db.commit()
    await db.refresh(task)
    return task
