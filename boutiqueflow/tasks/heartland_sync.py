"""Celery tasks for syncing Heartland data and refreshing analysis snapshots.

The full sync runs these stages in order, committing after each one:
1. Receiving window -> receive_events
2. Sales window -> sale_events
3. Customer profiles
4. Inventory analysis snapshot
5. Sales analysis snapshot
6. Receipt listing snapshot

A failure fetching a whole window (or the live inventory) stops the run and
marks it failed; no snapshot is written from partial data. Per-record
failures only mark the run partial.
"""

import asyncio
import logging
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from boutiqueflow.celery_app import celery_app
from boutiqueflow.config import settings
from boutiqueflow.database import get_async_database_url
from boutiqueflow.models.sync_log import SyncLog, SyncStatus
from boutiqueflow.services.aging import refresh_inventory_analysis
from boutiqueflow.services.heartland import HeartlandAPIError, HeartlandClient
from boutiqueflow.services.ingestion import (
    IngestionContext,
    IngestionResult,
    ingest_receiving_window,
    ingest_sales_window,
    rebuild_customer_profiles,
)
from boutiqueflow.services.receipts import refresh_receipt_listing
from boutiqueflow.services.sales_patterns import refresh_sales_analysis
from boutiqueflow.services.sync_runs import (
    FULL_SYNC,
    RECEIPTS_SYNC,
    finish_sync_run,
    get_sync_run,
    start_sync_run,
)

logger = logging.getLogger(__name__)


class SyncAborted(Exception):
    """Raised inside a sync run when a stage cannot continue."""


async def _claim_run(
    session: AsyncSession,
    sync_type: str,
    run_id: str | None,
) -> SyncLog | None:
    """Load the run created by the trigger, or start a new one for scheduled runs."""
    if run_id:
        run = await get_sync_run(session, uuid.UUID(run_id))
        if run is None:
            logger.error("Sync run %s not found", run_id)
        return run
    return await start_sync_run(session, sync_type)


async def run_full_sync(
    session: AsyncSession,
    client: HeartlandClient,
    results: dict[str, Any],
    now: datetime | None = None,
) -> int:
    """Run every sync stage against one session and client.

    Args:
        session: Database session (committed after each stage)
        client: Heartland API client
        results: Dict to record per-stage results and errors into
        now: Reference time (default: now)

    Returns:
        Total records written

    Raises:
        SyncAborted: If a window fetch or the live inventory fetch fails.
    """
    if now is None:
        now = datetime.now(UTC)
    context = IngestionContext(client)
    records = 0

    stages = (
        ("receiving", lambda: ingest_receiving_window(
            session, context, now - timedelta(days=settings.receiving_lookback_days)
        )),
        ("sales", lambda: ingest_sales_window(
            session, context, now - timedelta(days=settings.sales_lookback_days)
        )),
        ("customers", lambda: rebuild_customer_profiles(session, client)),
    )
    for name, stage in stages:
        try:
            stage_result: IngestionResult = await stage()
        except HeartlandAPIError as e:
            await session.rollback()
            raise SyncAborted(f"{name} window fetch failed: {e}") from e
        await session.commit()
        results[name] = stage_result.to_dict()
        results["errors"].extend(stage_result.errors)
        records += stage_result.records_upserted

    try:
        analysis = await refresh_inventory_analysis(session, client, now)
    except HeartlandAPIError as e:
        await session.rollback()
        raise SyncAborted(f"Live inventory fetch failed: {e}") from e
    await session.commit()
    results["inventory_analysis"] = analysis.stats.model_dump(by_alias=True)

    sales = await refresh_sales_analysis(session, now=now)
    await session.commit()
    results["sales_analysis"] = sales.totals.model_dump(by_alias=True)

    try:
        listing = await refresh_receipt_listing(session, context)
    except HeartlandAPIError as e:
        await session.rollback()
        results["errors"].append(f"Receipt listing failed: {e}")
        logger.error("Receipt listing refresh failed: %s", e)
    else:
        await session.commit()
        results["receipts"] = len(listing.receipts)

    return records


async def _async_sync_heartland(run_id: str | None = None) -> dict[str, Any]:
    """Async implementation of the full Heartland sync.

    Returns:
        Dictionary with sync results
    """
    engine = create_async_engine(
        get_async_database_url(settings.database_url),
        pool_pre_ping=True,
    )
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    results: dict[str, Any] = {
        "status": SyncStatus.SUCCESS.value,
        "run_id": run_id,
        "sync_time": datetime.now(UTC).isoformat(),
        "records_synced": 0,
        "errors": [],
    }

    try:
        async with async_session() as session:
            run = await _claim_run(session, FULL_SYNC, run_id)
            if run is None:
                results["status"] = "skipped"
                results["errors"].append(
                    f"Sync run {run_id} not found"
                    if run_id
                    else "Another full sync is already running"
                )
                return results
            await session.commit()
            results["run_id"] = str(run.id)

            status = SyncStatus.SUCCESS
            error_message = None
            try:
                async with HeartlandClient() as client:
                    results["records_synced"] = await run_full_sync(session, client, results)
            except SyncAborted as e:
                status = SyncStatus.FAILED
                error_message = str(e)
                results["errors"].append(error_message)
                logger.error("Heartland sync aborted: %s", e)
            except Exception as e:
                await session.rollback()
                status = SyncStatus.FAILED
                error_message = f"Unexpected error: {e}"
                results["errors"].append(error_message)
                logger.exception("Unexpected error during Heartland sync")

            if status == SyncStatus.SUCCESS and results["errors"]:
                status = SyncStatus.PARTIAL
                error_message = "; ".join(results["errors"][:20])

            await finish_sync_run(
                session,
                run,
                status,
                records_synced=results["records_synced"],
                error_message=error_message,
            )
            await session.commit()
            results["status"] = status.value
    finally:
        await engine.dispose()

    return results


async def _async_refresh_receipts() -> dict[str, Any]:
    """Async implementation of the receipt listing refresh."""
    engine = create_async_engine(
        get_async_database_url(settings.database_url),
        pool_pre_ping=True,
    )
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    results: dict[str, Any] = {"status": SyncStatus.SUCCESS.value, "receipts": 0, "errors": []}

    try:
        async with async_session() as session:
            run = await start_sync_run(session, RECEIPTS_SYNC)
            if run is None:
                results["status"] = "skipped"
                return results
            await session.commit()

            try:
                async with HeartlandClient() as client:
                    listing = await refresh_receipt_listing(session, IngestionContext(client))
                await session.commit()
                results["receipts"] = len(listing.receipts)
                await finish_sync_run(
                    session, run, SyncStatus.SUCCESS, records_synced=len(listing.receipts)
                )
            except HeartlandAPIError as e:
                await session.rollback()
                results["status"] = SyncStatus.FAILED.value
                results["errors"].append(str(e))
                logger.error("Receipt listing refresh failed: %s", e)
                await finish_sync_run(session, run, SyncStatus.FAILED, error_message=str(e))
            await session.commit()
    finally:
        await engine.dispose()

    return results


@celery_app.task(
    bind=True,
    name="boutiqueflow.tasks.heartland_sync.sync_heartland_data",
    max_retries=0,
)
def sync_heartland_data(self: Any, run_id: str | None = None) -> dict[str, Any]:
    """Celery task running the full Heartland sync.

    Triggered nightly by beat, or on demand by POST /sync which creates the
    run record first and passes its ID.

    Returns:
        Dictionary with sync results including counts and any errors
    """
    logger.info("Starting Heartland sync (run %s)", run_id or "scheduled")
    result = asyncio.run(_async_sync_heartland(run_id))
    logger.info(
        "Heartland sync finished with status %s: %d records",
        result["status"],
        result["records_synced"],
    )
    return result


@celery_app.task(
    bind=True,
    name="boutiqueflow.tasks.heartland_sync.refresh_receipts_cache",
    max_retries=3,
    default_retry_delay=60,
)
def refresh_receipts_cache(self: Any) -> dict[str, Any]:
    """Celery task rebuilding the cached receiving queue."""
    try:
        return asyncio.run(_async_refresh_receipts())
    except Exception as e:
        logger.exception("Receipt cache refresh task failed")
        raise self.retry(exc=e) from e
