"""Structured analysis snapshots and their cache storage.

Snapshots are validated against these models before they are written, so a
malformed computation never reaches the analysis_cache table. Field aliases
define the camelCase wire format served to the dashboard.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from boutiqueflow.models.analysis_cache import (
    INVENTORY_ANALYSIS_KEY,
    RECEIPTS_KEY,
    SALES_ANALYSIS_KEY,
    AnalysisCache,
)

logger = logging.getLogger(__name__)


class SnapshotModel(BaseModel):
    """Base for snapshot records: camelCase aliases, snake_case attributes."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


# --- Inventory analysis ---


class DeadStockSummary(SnapshotModel):
    """Item counts and cost-basis value per aging bucket."""

    items_fresh: int = Field(alias="itemsFresh")
    items_watch: int = Field(alias="itemsWatch")
    items_60_days: int = Field(alias="items60Days")
    items_90_days: int = Field(alias="items90Days")
    items_120_days: int = Field(alias="items120Days")
    value_fresh: float = Field(alias="valueFresh")
    value_watch: float = Field(alias="valueWatch")
    value_60_days: float = Field(alias="value60Days")
    value_90_days: float = Field(alias="value90Days")
    value_120_days: float = Field(alias="value120Days")
    total_items: int = Field(alias="totalItems")
    total_value: float = Field(alias="totalValue")


class StoreMetrics(SnapshotModel):
    """Cost received in each trailing window versus cost still on hand."""

    received_30_days: float = Field(alias="received30Days")
    received_45_days: float = Field(alias="received45Days")
    received_60_days: float = Field(alias="received60Days")
    received_90_days: float = Field(alias="received90Days")
    still_on_hand_30_days: float = Field(alias="stillOnHand30Days")
    still_on_hand_45_days: float = Field(alias="stillOnHand45Days")
    still_on_hand_60_days: float = Field(alias="stillOnHand60Days")
    still_on_hand_90_days: float = Field(alias="stillOnHand90Days")
    pct_on_hand_30_days: int = Field(alias="pctOnHand30Days")
    pct_on_hand_45_days: int = Field(alias="pctOnHand45Days")
    pct_on_hand_60_days: int = Field(alias="pctOnHand60Days")
    pct_on_hand_90_days: int = Field(alias="pctOnHand90Days")


class AgingItem(SnapshotModel):
    """An on-hand item at least 45 days past its most recent receipt."""

    id: str
    name: str
    category: str
    vendor: str
    qty_received: int = Field(alias="qtyReceived")
    qty_sold: int = Field(alias="qtySold")
    qty_remaining: float = Field(alias="qtyRemaining")
    price: float
    retail_value: float = Field(alias="retailValue")
    cost_value: float = Field(alias="costValue")
    received_date: str = Field(alias="receivedDate")
    days_since_received: int = Field(alias="daysSinceReceived")
    bucket: str
    suggested_markdown: str | None = Field(alias="suggestedMarkdown")


class DeadStock(SnapshotModel):
    summary: DeadStockSummary
    store_metrics: StoreMetrics = Field(alias="storeMetrics")
    items: list[AgingItem]


class VelocityGroup(SnapshotModel):
    """Average days between first and last sale for a category or vendor."""

    name: str
    avg_days_to_sell: float = Field(alias="avgDaysToSell")
    items_sold: int = Field(alias="itemsSold")


class Velocity(SnapshotModel):
    by_category: list[VelocityGroup] = Field(alias="byCategory")
    by_vendor: list[VelocityGroup] = Field(alias="byVendor")


class AnalysisStats(SnapshotModel):
    total_items_analyzed: int = Field(alias="totalItemsAnalyzed")
    total_items_with_receive_data: int = Field(alias="totalItemsWithReceiveData")
    total_dead_stock_items: int = Field(alias="totalDeadStockItems")


class InventoryAnalysis(SnapshotModel):
    """The inventory_analysis snapshot."""

    dead_stock: DeadStock = Field(alias="deadStock")
    velocity: Velocity
    stats: AnalysisStats


# --- Sales analysis ---


class SalesBreakdown(SnapshotModel):
    """Revenue and units for one slice of sales (a weekday, hour, or group)."""

    name: str
    revenue: float
    units: int
    transactions: int


class SalesTotals(SnapshotModel):
    transactions: int
    units: int
    revenue: float
    avg_ticket: float = Field(alias="avgTicket")


class SalesAnalysis(SnapshotModel):
    """The sales_analysis snapshot."""

    window_days: int = Field(alias="windowDays")
    totals: SalesTotals
    by_day_of_week: list[SalesBreakdown] = Field(alias="byDayOfWeek")
    by_hour: list[SalesBreakdown] = Field(alias="byHour")
    top_categories: list[SalesBreakdown] = Field(alias="topCategories")
    top_vendors: list[SalesBreakdown] = Field(alias="topVendors")


# --- Receipt listing ---


class ReceiptSummary(SnapshotModel):
    """One row of the receiving queue."""

    id: str
    heartland_id: str = Field(alias="heartlandId")
    date: str
    vendor: str
    po_number: str = Field(alias="poNumber")
    item_count: int = Field(alias="itemCount")
    status: str


class ReceiptListing(SnapshotModel):
    """The receipts snapshot."""

    receipts: list[ReceiptSummary]


SNAPSHOT_MODELS: dict[str, type[SnapshotModel]] = {
    INVENTORY_ANALYSIS_KEY: InventoryAnalysis,
    SALES_ANALYSIS_KEY: SalesAnalysis,
    RECEIPTS_KEY: ReceiptListing,
}


def validate_snapshot(cache_key: str, payload: SnapshotModel | dict[str, Any]) -> dict[str, Any]:
    """Validate a snapshot payload and return its wire-format dict.

    Args:
        cache_key: Snapshot name; must be one of SNAPSHOT_MODELS
        payload: A snapshot model, or a dict in wire format

    Returns:
        JSON-ready dict using camelCase keys

    Raises:
        KeyError: If the cache key is unknown.
        pydantic.ValidationError: If the payload does not match the model.
    """
    model_class = SNAPSHOT_MODELS[cache_key]
    if isinstance(payload, dict):
        payload = model_class.model_validate(payload)
    elif not isinstance(payload, model_class):
        raise TypeError(
            f"Expected {model_class.__name__} for {cache_key!r}, "
            f"got {type(payload).__name__}"
        )
    return payload.model_dump(mode="json", by_alias=True)


async def save_snapshot(
    session: AsyncSession,
    cache_key: str,
    payload: SnapshotModel | dict[str, Any],
    synced_at: datetime | None = None,
) -> datetime:
    """Replace the snapshot stored under ``cache_key``.

    Args:
        session: Database session
        cache_key: Snapshot name
        payload: Snapshot body (validated before writing)
        synced_at: Computation time (default: now)

    Returns:
        The synced_at timestamp written
    """
    body = validate_snapshot(cache_key, payload)
    synced_at = synced_at or datetime.now(UTC)

    stmt = insert(AnalysisCache).values(
        cache_key=cache_key,
        payload=body,
        synced_at=synced_at,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[AnalysisCache.cache_key],
        set_={
            "payload": stmt.excluded.payload,
            "synced_at": stmt.excluded.synced_at,
        },
    )
    await session.execute(stmt)
    logger.info("Saved %s snapshot at %s", cache_key, synced_at.isoformat())
    return synced_at


async def get_snapshot(
    session: AsyncSession,
    cache_key: str,
) -> AnalysisCache | None:
    """Fetch the current snapshot for ``cache_key``, if one exists."""
    result = await session.execute(
        select(AnalysisCache).where(AnalysisCache.cache_key == cache_key)
    )
    return result.scalar_one_or_none()
