"""FastAPI routes serving the precomputed analysis snapshots."""

from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from boutiqueflow.database import get_db
from boutiqueflow.models.analysis_cache import INVENTORY_ANALYSIS_KEY, SALES_ANALYSIS_KEY
from boutiqueflow.services.snapshots import get_snapshot

router = APIRouter(prefix="/analysis", tags=["analysis"])


class SnapshotResponse(BaseModel):
    """A stored analysis snapshot.

    ``status`` is ``no_data`` (with null ``syncedAt`` and ``data``) until the
    first successful sync has written the snapshot.
    """

    status: str = Field(description="ok or no_data")
    synced_at: datetime | None = Field(
        default=None,
        alias="syncedAt",
        description="When the snapshot was computed",
    )
    data: dict[str, Any] | None = Field(default=None, description="Snapshot payload")

    model_config = {"populate_by_name": True}


async def _snapshot_response(db: AsyncSession, cache_key: str) -> SnapshotResponse:
    snapshot = await get_snapshot(db, cache_key)
    if snapshot is None:
        return SnapshotResponse(status="no_data")
    return SnapshotResponse(status="ok", synced_at=snapshot.synced_at, data=snapshot.payload)


@router.get("/inventory", response_model=SnapshotResponse, response_model_by_alias=True)
async def get_inventory_analysis(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SnapshotResponse:
    """Get the latest inventory aging, store health and velocity snapshot."""
    return await _snapshot_response(db, INVENTORY_ANALYSIS_KEY)


@router.get("/sales", response_model=SnapshotResponse, response_model_by_alias=True)
async def get_sales_analysis(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SnapshotResponse:
    """Get the latest sales pattern snapshot."""
    return await _snapshot_response(db, SALES_ANALYSIS_KEY)
