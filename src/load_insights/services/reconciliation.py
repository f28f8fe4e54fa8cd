"""Load reconciliation engine and account-scoped load store.

Candidates from one ingestion batch are deduplicated by ``(account, load_id)``
against the stored loads and against each other, merged with the gap-filling
rule in ``load_merge``, and written back in a single transaction as a
multi-row upsert. Either the whole batch is durable or none of it is.
"""

import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from load_insights.domain.enums import FileOutcome
from load_insights.domain.models import Load
from load_insights.domain.schemas import LoadRecord
from load_insights.services.load_merge import merge_loads

logger = logging.getLogger(__name__)

# Rows per INSERT statement; keeps bound parameters under SQLite's limit
UPSERT_CHUNK_SIZE = 200

_UPSERT_COLUMNS = [
    "broker_name", "broker_email", "broker_phone",
    "carrier_name", "carrier_mc", "carrier_email", "carrier_phone", "carrier_address",
    "rate_total", "linehaul_rate", "accessorials", "rpm",
    "stops", "miles",
    "equipment_type", "temp_min", "temp_max", "commodity", "weight", "notes",
    "source_file", "source_channel", "extracted_at",
]


class LoadStoreError(Exception):
    """The batch could not be persisted; nothing from it was written."""


@dataclass
class ReconcileStats:
    """Outcome of one reconciliation batch.

    ``outcomes`` is aligned with the candidate list passed in, one
    ``FileOutcome`` value per candidate.
    """

    added: int = 0
    refreshed: int = 0
    duplicates: int = 0
    skipped: int = 0
    outcomes: list[str] = field(default_factory=list)
    duplicate_details: list[dict] = field(default_factory=list)
    loads: list[LoadRecord] = field(default_factory=list)

    @property
    def merged(self) -> int:
        return self.refreshed + self.duplicates


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------


def to_record(row: Load) -> LoadRecord:
    return LoadRecord.model_validate(row)


def _to_row(account: str, record: LoadRecord) -> dict:
    data = record.model_dump(mode="json")
    row = {col: data[col] for col in _UPSERT_COLUMNS}
    row["id"] = str(uuid.uuid4())
    row["account"] = account
    row["load_id"] = record.load_id
    return row


def _insert_for(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    if dialect == "sqlite":
        return sqlite.insert
    if dialect == "postgresql":
        return postgresql.insert
    raise LoadStoreError(f"Unsupported database dialect for upsert: {dialect}")


# ---------------------------------------------------------------------------
# Store operations
# ---------------------------------------------------------------------------


async def list_loads(db: AsyncSession, account: str) -> list[LoadRecord]:
    """Every load in the account partition, newest first."""
    result = await db.execute(
        select(Load)
        .where(Load.account == account)
        .order_by(Load.created_at.desc(), Load.load_id)
        .execution_options(populate_existing=True)
    )
    return [to_record(row) for row in result.scalars().all()]


async def processed_source_files(db: AsyncSession, account: str) -> set[str]:
    """Source filenames already ingested for the account."""
    result = await db.execute(
        select(Load.source_file).where(Load.account == account, Load.source_file != "")
    )
    return {name for name in result.scalars().all() if name}


async def clear_loads(db: AsyncSession, account: str) -> int:
    """Delete the account's loads. Returns the number of rows removed."""
    count = await db.scalar(select(func.count()).select_from(Load).where(Load.account == account))
    try:
        await db.execute(delete(Load).where(Load.account == account))
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Failed to clear loads for %s: %s", account, exc)
        raise LoadStoreError("Failed to clear loads") from exc
    logger.info("Cleared %d load(s) for %s", count or 0, account)
    return count or 0


async def _existing_by_id(db: AsyncSession, account: str, load_ids: list[str]) -> dict[str, LoadRecord]:
    found: dict[str, LoadRecord] = {}
    for start in range(0, len(load_ids), UPSERT_CHUNK_SIZE):
        chunk = load_ids[start:start + UPSERT_CHUNK_SIZE]
        result = await db.execute(
            select(Load)
            .where(Load.account == account, Load.load_id.in_(chunk))
            .execution_options(populate_existing=True)
        )
        for row in result.scalars().all():
            found[row.load_id] = to_record(row)
    return found


async def _upsert(db: AsyncSession, account: str, records: list[LoadRecord]) -> None:
    insert = _insert_for(db)
    rows = [_to_row(account, r) for r in records]
    for start in range(0, len(rows), UPSERT_CHUNK_SIZE):
        stmt = insert(Load).values(rows[start:start + UPSERT_CHUNK_SIZE])
        set_ = {col: stmt.excluded[col] for col in _UPSERT_COLUMNS}
        set_["updated_at"] = func.now()
        stmt = stmt.on_conflict_do_update(index_elements=["account", "load_id"], set_=set_)
        await db.execute(stmt)


async def reconcile_loads(
    db: AsyncSession,
    account: str,
    candidates: list[LoadRecord],
) -> ReconcileStats:
    """Deduplicate and merge a batch of candidates into the account's loads.

    Candidates are handled in input order. A candidate without a ``load_id``
    is skipped. One whose id is unknown is added; one whose id matches a
    stored load, or an earlier candidate in the same batch, is merged onto
    it. Each id is written once.

    Raises:
        LoadStoreError: the batch could not be persisted and was rolled back.
    """
    stats = ReconcileStats()
    load_ids = list(dict.fromkeys(c.load_id for c in candidates if c.load_id))

    try:
        existing = await _existing_by_id(db, account, load_ids) if load_ids else {}
    except SQLAlchemyError as exc:
        logger.error("Failed to read existing loads for %s: %s", account, exc)
        raise LoadStoreError("Failed to read existing loads") from exc

    pending: dict[str, LoadRecord] = {}
    for candidate in candidates:
        load_id = candidate.load_id
        if not load_id:
            stats.skipped += 1
            stats.outcomes.append(FileOutcome.SKIPPED.value)
            logger.warning("Skipping load without load_id from %s", candidate.source_file or "unknown source")
            continue

        base = pending.get(load_id) or existing.get(load_id)
        if base is None:
            pending[load_id] = candidate.model_copy(update={"rpm": candidate.compute_rpm()})
            stats.added += 1
            stats.outcomes.append(FileOutcome.EXTRACTED.value)
            continue

        merged, refreshed = merge_loads(base, candidate)
        pending[load_id] = merged
        if refreshed:
            stats.refreshed += 1
        else:
            stats.duplicates += 1
        stats.outcomes.append(FileOutcome.DUPLICATE.value)
        stats.duplicate_details.append({
            "load_id": load_id,
            "filename": candidate.source_file,
            "refreshed": refreshed,
        })

    if pending:
        try:
            await _upsert(db, account, list(pending.values()))
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error("Load upsert failed for %s, batch rolled back: %s", account, exc)
            raise LoadStoreError("Failed to save loads") from exc

    stats.loads = list(pending.values())
    logger.info(
        "Reconciled %d candidate(s) for %s: added=%d refreshed=%d duplicates=%d skipped=%d",
        len(candidates), account, stats.added, stats.refreshed, stats.duplicates, stats.skipped,
    )
    return stats
