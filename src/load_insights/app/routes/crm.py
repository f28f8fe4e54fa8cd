"""CRM routes: brokers, interactions, follow-up tasks and the broker sync.

All endpoints require an authenticated account.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from load_insights.app.routes.auth import require_account_dep
from load_insights.domain.schemas import (
    BrokerResponse,
    BrokerUpdate,
    InteractionCreate,
    InteractionResponse,
    TaskCreate,
    TaskResponse,
    TaskUpdate,
)
from load_insights.infra.database import get_db
from load_insights.services import crm_service
from load_insights.services.broker_aggregation import sync_brokers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/crm", tags=["crm"])


# ---------------------------------------------------------------------------
# Brokers
# ---------------------------------------------------------------------------


@router.get("/brokers")
async def list_brokers(
    status: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: str = Query("name", alias="sortBy"),
    sort_order: str = Query("asc", alias="sortOrder"),
    account: str = Depends(require_account_dep),
    db: AsyncSession = Depends(get_db),
):
    brokers = await crm_service.list_brokers(
        db, account, status=status, search=search, sort_by=sort_by, sort_order=sort_order,
    )
    return {"brokers": [BrokerResponse.model_validate(b).model_dump(mode="json") for b in brokers]}


@router.get("/brokers/{broker_id}")
async def get_broker(
    broker_id: str,
    account: str = Depends(require_account_dep),
    db: AsyncSession = Depends(get_db),
):
    """Broker profile with its loads, interactions and tasks."""
    broker = await crm_service.get_broker(db, account, broker_id)
    loads = await crm_service.broker_loads(db, account, broker)
    interactions = await crm_service.list_interactions(db, account, broker_id=broker_id)
    tasks = await crm_service.list_tasks(db, account, broker_id=broker_id)

    payload = BrokerResponse.model_validate(broker).model_dump(mode="json")
    payload["loads"] = [load.model_dump(mode="json") for load in loads]
    payload["interactions"] = [
        InteractionResponse.model_validate(i).model_dump(mode="json") for i in interactions
    ]
    payload["tasks"] = [TaskResponse.model_validate(t).model_dump(mode="json") for t in tasks]
    return {"broker": payload}


@router.patch("/brokers/{broker_id}")
async def update_broker(
    broker_id: str,
    body: BrokerUpdate,
    account: str = Depends(require_account_dep),
    db: AsyncSession = Depends(get_db),
):
    broker = await crm_service.update_broker(db, account, broker_id, body)
    return {"success": True, "broker": BrokerResponse.model_validate(broker).model_dump(mode="json")}


@router.post("/sync")
async def sync(
    account: str = Depends(require_account_dep),
    db: AsyncSession = Depends(get_db),
):
    """Recompute broker aggregates from the account's current loads."""
    result = await sync_brokers(db, account)
    return {"success": True, "synced": result.synced, "updated": result.updated}


# ---------------------------------------------------------------------------
# Interactions
# ---------------------------------------------------------------------------


@router.get("/interactions")
async def list_interactions(
    broker_id: Optional[str] = Query(None, alias="brokerId"),
    account: str = Depends(require_account_dep),
    db: AsyncSession = Depends(get_db),
):
    interactions = await crm_service.list_interactions(db, account, broker_id=broker_id)
    return {
        "interactions": [
            InteractionResponse.model_validate(i).model_dump(mode="json") for i in interactions
        ]
    }


@router.post("/interactions", status_code=201)
async def create_interaction(
    body: InteractionCreate,
    account: str = Depends(require_account_dep),
    db: AsyncSession = Depends(get_db),
):
    interaction = await crm_service.create_interaction(db, account, body)
    return {"interaction": InteractionResponse.model_validate(interaction).model_dump(mode="json")}


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@router.get("/tasks")
async def list_tasks(
    broker_id: Optional[str] = Query(None, alias="brokerId"),
    status: Optional[str] = None,
    priority: Optional[str] = None,
    overdue: bool = False,
    account: str = Depends(require_account_dep),
    db: AsyncSession = Depends(get_db),
):
    tasks = await crm_service.list_tasks(
        db, account, broker_id=broker_id, status=status, priority=priority, overdue=overdue,
    )
    return {"tasks": [TaskResponse.model_validate(t).model_dump(mode="json") for t in tasks]}


@router.post("/tasks", status_code=201)
async def create_task(
    body: TaskCreate,
    account: str = Depends(require_account_dep),
    db: AsyncSession = Depends(get_db),
):
    task = await crm_service.create_task(db, account, body)
    return {"task": TaskResponse.model_validate(task).model_dump(mode="json")}


@router.patch("/tasks")
async def update_task(
    body: TaskUpdate,
    account: str = Depends(require_account_dep),
    db: AsyncSession = Depends(get_db),
):
    task = await crm_service.update_task(db, account, body)
    return {"success": True, "task": TaskResponse.model_validate(task).model_dump(mode="json")}
