"""FastAPI routes for the receiving queue."""

from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from boutiqueflow.api.upstream import upstream_http_error
from boutiqueflow.database import get_db
from boutiqueflow.models.analysis_cache import RECEIPTS_KEY
from boutiqueflow.services.heartland import HeartlandClient
from boutiqueflow.services.ingestion import IngestionContext
from boutiqueflow.services.receipts import build_receipt_detail, build_receipt_listing
from boutiqueflow.services.snapshots import get_snapshot

router = APIRouter(prefix="/receipts", tags=["receipts"])


class ReceiptListResponse(BaseModel):
    """Recent receipts, from the sync cache or built live."""

    receipts: list[dict[str, Any]] = Field(description="Receipt summaries")
    cached: bool = Field(description="Whether the listing came from the sync cache")
    synced_at: datetime | None = Field(
        default=None,
        alias="syncedAt",
        description="When the cached listing was built",
    )

    model_config = {"populate_by_name": True}


@router.get("", response_model=ReceiptListResponse, response_model_by_alias=True)
async def list_receipts(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ReceiptListResponse:
    """List recent receipts.

    Serves the listing cached by the last sync; falls back to Heartland when
    no cache exists yet.
    """
    snapshot = await get_snapshot(db, RECEIPTS_KEY)
    if snapshot is not None:
        return ReceiptListResponse(
            receipts=snapshot.payload.get("receipts", []),
            cached=True,
            synced_at=snapshot.synced_at,
        )

    try:
        async with HeartlandClient() as client:
            listing = await build_receipt_listing(IngestionContext(client))
    except Exception as e:
        raise upstream_http_error(e) from e

    return ReceiptListResponse(
        receipts=listing.model_dump(by_alias=True)["receipts"],
        cached=False,
    )


@router.get("/{receipt_id}")
async def get_receipt(
    receipt_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict[str, Any]:
    """Get a receipt with its line items and their processing status."""
    try:
        async with HeartlandClient() as client:
            return await build_receipt_detail(db, IngestionContext(client), receipt_id)
    except Exception as e:
        raise upstream_http_error(e) from e
