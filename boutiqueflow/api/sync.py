"""FastAPI routes for triggering and monitoring Heartland syncs."""

import logging
from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from boutiqueflow.config import settings
from boutiqueflow.database import get_db
from boutiqueflow.models.sync_log import SyncStatus
from boutiqueflow.services.sync_runs import (
    FULL_SYNC,
    finish_sync_run,
    list_recent_runs,
    start_sync_run,
)
from boutiqueflow.tasks.heartland_sync import sync_heartland_data

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


# --- Pydantic Schemas ---


class SyncTriggerResponse(BaseModel):
    """Response for an accepted sync request."""

    status: str = Field(description="Always 'queued'")
    sync_type: str = Field(description="Type of sync queued")
    run_id: UUID = Field(description="Sync run UUID for status polling")


class SyncRunResponse(BaseModel):
    """A single sync run from the audit log."""

    id: UUID = Field(description="Sync run UUID")
    sync_type: str = Field(description="Type of sync (full, receipts)")
    status: str = Field(description="running, success, partial or failed")
    started_at: datetime = Field(description="When the run started")
    completed_at: datetime | None = Field(description="When the run finished")
    records_synced: int = Field(description="Records written by the run")
    error_message: str | None = Field(description="Errors recorded by the run")

    model_config = {"from_attributes": True}


class SyncStatusResponse(BaseModel):
    """Recent sync runs, newest first."""

    running: bool = Field(description="Whether a sync is currently in progress")
    runs: list[SyncRunResponse] = Field(description="Recent sync runs")


def verify_sync_key(
    x_api_key: Annotated[str | None, Header()] = None,
) -> None:
    """Require the X-API-Key header when a sync key is configured."""
    if settings.sync_api_key and x_api_key != settings.sync_api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


# --- API Endpoints ---


@router.post(
    "",
    response_model=SyncTriggerResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(verify_sync_key)],
)
async def trigger_sync(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SyncTriggerResponse:
    """Queue a full Heartland sync.

    The sync runs in the background; poll GET /sync/status for the outcome.
    Only one full sync may run at a time.
    """
    run = await start_sync_run(db, FULL_SYNC)
    if run is None:
        raise HTTPException(status_code=409, detail="A sync is already running")
    # The worker loads the run by ID, so it must be visible before queuing
    await db.commit()

    try:
        sync_heartland_data.delay(str(run.id))
    except Exception as e:
        logger.error("Failed to queue sync run %s: %s", run.id, e)
        await finish_sync_run(db, run, SyncStatus.FAILED, error_message=f"Queue error: {e}")
        await db.commit()
        raise HTTPException(status_code=503, detail=f"Task queue unavailable: {e}") from e

    logger.info("Queued full sync run %s", run.id)
    return SyncTriggerResponse(status="queued", sync_type=FULL_SYNC, run_id=run.id)


@router.get("/status", response_model=SyncStatusResponse)
async def get_sync_status(
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: Annotated[int, Query(ge=1, le=50, description="Number of runs to return")] = 10,
) -> SyncStatusResponse:
    """Get the most recent sync runs."""
    runs = await list_recent_runs(db, limit=limit)
    return SyncStatusResponse(
        running=any(run.status == SyncStatus.RUNNING.value for run in runs),
        runs=[SyncRunResponse.model_validate(run) for run in runs],
    )
