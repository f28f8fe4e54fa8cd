"""Fire-and-forget jobs spawned after an ingestion response is decided.

Jobs open their own database session because the request session is closed
once the response is sent. Failures are logged and never reach the caller.
"""

import asyncio
import logging

from load_insights.infra.database import get_session_factory
from load_insights.services.broker_aggregation import sync_brokers

logger = logging.getLogger(__name__)

# Hold references to background tasks so they don't get garbage collected
_background_tasks: set = set()


async def run_broker_sync(account: str) -> None:
    """Recompute the account's brokers in a fresh session."""
    logger.info("Background broker sync started for %s", account)
    try:
        async with get_session_factory()() as db:
            result = await sync_brokers(db, account)
        logger.info(
            "Background broker sync finished for %s: synced=%d updated=%d failed=%d",
            account, result.synced, result.updated, result.failed,
        )
    except Exception:
        logger.exception("Background broker sync failed for %s", account)


def schedule_broker_sync(account: str) -> asyncio.Task:
    """Spawn ``run_broker_sync`` as a detached task and return it."""
    task = asyncio.create_task(run_broker_sync(account))
    # Prevent GC from collecting the task before it finishes
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task
