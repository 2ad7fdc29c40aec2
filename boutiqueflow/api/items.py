"""FastAPI routes for item details, descriptions and processing status."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from boutiqueflow.api.upstream import upstream_http_error
from boutiqueflow.database import get_db
from boutiqueflow.models.processing_status import EntityType, ProcessingState
from boutiqueflow.services.heartland import (
    UNKNOWN_ITEM,
    HeartlandClient,
    item_brand,
    item_category,
    item_color,
    item_size,
)
from boutiqueflow.services.ingestion import IngestionContext
from boutiqueflow.services.receipts import set_processing_status

router = APIRouter(tags=["items"])


# --- Pydantic Schemas ---


class ItemDetailResponse(BaseModel):
    """Item merchandising details from Heartland."""

    id: str = Field(description="Heartland item ID")
    name: str = Field(description="Item description")
    vendor: str = Field(description="Primary vendor name")
    brand: str = Field(description="Brand (falls back to vendor)")
    category: str = Field(description="Category or department")
    color: str = Field(description="Color custom field")
    size: str = Field(description="Size custom field")
    cost: float | None = Field(description="Unit cost")
    price: float | None = Field(description="Retail price")
    long_description: str = Field(description="Online store description")


class DescriptionUpdateRequest(BaseModel):
    """Request to replace an item's online store description."""

    description: str = Field(min_length=1, description="New long description")


class DescriptionUpdateResponse(BaseModel):
    """Result of a description update."""

    id: str = Field(description="Heartland item ID")
    updated: bool = Field(description="Whether Heartland accepted the update")


class StatusUpdateRequest(BaseModel):
    """Request to mark an item or grid as processed."""

    status: ProcessingState = Field(description="new, completed or skipped")
    processed_by: str | None = Field(default=None, description="Who processed it")
    receipt_id: str | None = Field(default=None, description="Receipt being worked")


class StatusUpdateResponse(BaseModel):
    """Stored processing status."""

    entity_type: str = Field(description="item or grid")
    entity_id: str = Field(description="Heartland item or grid ID")
    status: str = Field(description="Processing status")
    processed_at: datetime | None = Field(description="When the status was set")
    processed_by: str | None = Field(description="Who set the status")

    model_config = {"from_attributes": True}


# --- API Endpoints ---


@router.get("/items/{item_id}", response_model=ItemDetailResponse)
async def get_item(item_id: str) -> ItemDetailResponse:
    """Get an item's details from Heartland."""
    try:
        async with HeartlandClient() as client:
            item = await client.get_item(item_id)
            vendor = await IngestionContext(client).vendor_name(item.get("primary_vendor_id"))
    except Exception as e:
        raise upstream_http_error(e) from e

    cost = item.get("cost")
    price = item.get("price")
    return ItemDetailResponse(
        id=str(item.get("id", item_id)),
        name=item.get("description") or UNKNOWN_ITEM,
        vendor=vendor,
        brand=item_brand(item) or vendor,
        category=item_category(item),
        color=item_color(item),
        size=item_size(item),
        cost=float(cost) if cost is not None else None,
        price=float(price) if price is not None else None,
        long_description=item.get("long_description") or "",
    )


@router.put("/items/{item_id}/description", response_model=DescriptionUpdateResponse)
async def update_item_description(
    item_id: str,
    request: DescriptionUpdateRequest,
) -> DescriptionUpdateResponse:
    """Write a new online store description to Heartland."""
    try:
        async with HeartlandClient() as client:
            await client.update_item(item_id, {"long_description": request.description})
    except Exception as e:
        raise upstream_http_error(e) from e
    return DescriptionUpdateResponse(id=item_id, updated=True)


async def _set_status(
    db: AsyncSession,
    entity_type: EntityType,
    entity_id: str,
    request: StatusUpdateRequest,
) -> StatusUpdateResponse:
    if not entity_id.strip():
        raise HTTPException(status_code=400, detail=f"{entity_type.value} ID is required")
    row = await set_processing_status(
        db,
        entity_type,
        entity_id,
        request.status,
        processed_by=request.processed_by,
        receipt_id=request.receipt_id,
    )
    return StatusUpdateResponse.model_validate(row)


@router.post("/items/{item_id}/status", response_model=StatusUpdateResponse)
async def set_item_status(
    item_id: str,
    request: StatusUpdateRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> StatusUpdateResponse:
    """Mark an item as completed or skipped (last write wins)."""
    return await _set_status(db, EntityType.ITEM, item_id, request)


@router.post("/grids/{grid_id}/status", response_model=StatusUpdateResponse)
async def set_grid_status(
    grid_id: str,
    request: StatusUpdateRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> StatusUpdateResponse:
    """Mark a product group (grid) as completed or skipped."""
    return await _set_status(db, EntityType.GRID, grid_id, request)
