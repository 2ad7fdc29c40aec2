"""Sync run audit log.

Every background sync writes a sync_logs row when it starts and updates it
when it finishes. The running row doubles as a guard: a second run of the
same type is refused while one is in progress.
"""

import logging
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boutiqueflow.models.sync_log import SyncLog, SyncStatus

logger = logging.getLogger(__name__)

# A running row older than this is treated as abandoned (worker crash)
STALE_RUN_HOURS = 6

FULL_SYNC = "full"
RECEIPTS_SYNC = "receipts"


async def get_running_sync(
    session: AsyncSession,
    sync_type: str,
    now: datetime | None = None,
) -> SyncLog | None:
    """Return an in-progress run of ``sync_type``, ignoring stale ones."""
    if now is None:
        now = datetime.now(UTC)
    cutoff = now - timedelta(hours=STALE_RUN_HOURS)

    result = await session.execute(
        select(SyncLog)
        .where(SyncLog.sync_type == sync_type)
        .where(SyncLog.status == SyncStatus.RUNNING.value)
        .where(SyncLog.started_at >= cutoff)
        .order_by(SyncLog.started_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def start_sync_run(
    session: AsyncSession,
    sync_type: str,
    now: datetime | None = None,
) -> SyncLog | None:
    """Record the start of a sync run.

    Returns:
        The new SyncLog row, or None if a run of this type is already in
        progress.
    """
    running = await get_running_sync(session, sync_type, now)
    if running is not None:
        logger.warning(
            "Not starting %s sync: run %s in progress since %s",
            sync_type,
            running.id,
            running.started_at,
        )
        return None

    run = SyncLog(
        sync_type=sync_type,
        status=SyncStatus.RUNNING.value,
        started_at=now or datetime.now(UTC),
    )
    session.add(run)
    await session.flush()
    logger.info("Started %s sync run %s", sync_type, run.id)
    return run


async def get_sync_run(session: AsyncSession, run_id: UUID) -> SyncLog | None:
    """Fetch a sync run by ID."""
    result = await session.execute(select(SyncLog).where(SyncLog.id == run_id))
    return result.scalar_one_or_none()


async def finish_sync_run(
    session: AsyncSession,
    run: SyncLog,
    status: SyncStatus,
    records_synced: int = 0,
    error_message: str | None = None,
) -> SyncLog:
    """Record the outcome of a sync run."""
    run.status = status.value
    run.completed_at = datetime.now(UTC)
    run.records_synced = records_synced
    run.error_message = error_message
    await session.flush()
    logger.info(
        "Finished %s sync run %s: %s (%d records)",
        run.sync_type,
        run.id,
        status.value,
        records_synced,
    )
    return run


async def list_recent_runs(
    session: AsyncSession,
    sync_type: str | None = None,
    limit: int = 10,
) -> Sequence[SyncLog]:
    """Most recent sync runs, newest first."""
    query = select(SyncLog)
    if sync_type:
        query = query.where(SyncLog.sync_type == sync_type)
    query = query.order_by(SyncLog.started_at.desc()).limit(limit)
    result = await session.execute(query)
    return result.scalars().all()
