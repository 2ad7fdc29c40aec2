"""Inventory aging and sell-through analysis.

This module turns receive_events, sale_events and a live on-hand snapshot
into the inventory_analysis snapshot:
- Dead-stock buckets by days since the most recent receipt
- Store health: cost received per trailing window vs. cost still on hand
- Velocity: average days from first to last sale, by category and vendor

Staleness is measured from the most recent receipt of an item, not the
first one: a reorder implies the earlier stock sold through.
"""

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from typing import Any
from zoneinfo import ZoneInfo

import pandas as pd
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boutiqueflow.config import settings
from boutiqueflow.models.analysis_cache import INVENTORY_ANALYSIS_KEY
from boutiqueflow.models.receive_event import ReceiveEvent
from boutiqueflow.models.sale_event import SaleEvent
from boutiqueflow.services.heartland import UNKNOWN_ITEM, UNKNOWN_VENDOR, HeartlandClient
from boutiqueflow.services.snapshots import (
    AgingItem,
    AnalysisStats,
    DeadStock,
    DeadStockSummary,
    InventoryAnalysis,
    StoreMetrics,
    Velocity,
    VelocityGroup,
    save_snapshot,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgingBucket:
    """An aging bucket: items at least ``min_days`` past their last receipt."""

    name: str
    min_days: int
    suggested_markdown: str | None


# Evaluated in order; first match wins
AGING_BUCKETS: tuple[AgingBucket, ...] = (
    AgingBucket("emergency", 120, "60%+ off or bundle/donate"),
    AgingBucket("dead", 90, "40-50% off"),
    AgingBucket("slow", 60, "20-30% off"),
    AgingBucket("watch", 45, "watch closely"),
)
FRESH_BUCKET = AgingBucket("fresh", 0, None)

# Items at least this old are listed individually in the snapshot
AGING_LIST_MIN_DAYS = 45

# Trailing windows (days) for store health metrics
HEALTH_WINDOWS: tuple[int, ...] = (30, 45, 60, 90)

# Sales lookback for velocity and minimum items per reported group
VELOCITY_WINDOW_DAYS = 180
MIN_VELOCITY_GROUP_SIZE = 3


@dataclass(frozen=True)
class ReceiveRow:
    """The receive_events columns the engine reads."""

    item_id: str
    received_at: datetime
    qty_received: int
    unit_cost: float | None
    item_name: str | None = None
    category: str | None = None
    vendor: str | None = None


@dataclass(frozen=True)
class SaleRow:
    """The sale_events columns the engine reads."""

    item_id: str
    sold_at: datetime
    quantity: int
    unit_price: float | None
    category: str | None = None
    vendor: str | None = None


@dataclass
class ItemReceiving:
    """Receiving history of one item, collapsed across receipts."""

    item_id: str
    last_received_at: datetime
    qty_received: int
    max_unit_cost: float | None
    name: str | None
    category: str | None
    vendor: str | None


@dataclass
class ItemSales:
    """Sales history of one item, collapsed across tickets."""

    item_id: str
    qty_sold: int
    max_unit_price: float | None


def _as_float(value: Decimal | float | int | None) -> float | None:
    if value is None:
        return None
    return float(value)


def _max_optional(current: float | None, candidate: float | None) -> float | None:
    if candidate is None:
        return current
    if current is None:
        return candidate
    return max(current, candidate)


def summarize_receiving(rows: Iterable[ReceiveRow]) -> dict[str, ItemReceiving]:
    """Collapse receive rows into one ItemReceiving per item.

    The last received date is the latest receipt. Descriptive fields come
    from the latest receipt that carries them.
    """
    summaries: dict[str, ItemReceiving] = {}
    for row in sorted(rows, key=lambda r: r.received_at):
        summary = summaries.get(row.item_id)
        if summary is None:
            summary = ItemReceiving(
                item_id=row.item_id,
                last_received_at=row.received_at,
                qty_received=0,
                max_unit_cost=None,
                name=None,
                category=None,
                vendor=None,
            )
            summaries[row.item_id] = summary

        summary.last_received_at = max(summary.last_received_at, row.received_at)
        summary.qty_received += row.qty_received
        summary.max_unit_cost = _max_optional(summary.max_unit_cost, row.unit_cost)
        summary.name = row.item_name or summary.name
        summary.category = row.category or summary.category
        summary.vendor = row.vendor or summary.vendor
    return summaries


def summarize_sales(rows: Iterable[SaleRow]) -> dict[str, ItemSales]:
    """Collapse sale rows into one ItemSales per item."""
    summaries: dict[str, ItemSales] = {}
    for row in rows:
        summary = summaries.setdefault(
            row.item_id,
            ItemSales(item_id=row.item_id, qty_sold=0, max_unit_price=None),
        )
        summary.qty_sold += row.quantity
        summary.max_unit_price = _max_optional(summary.max_unit_price, row.unit_price)
    return summaries


def days_since(then: datetime, now: datetime) -> int:
    """Whole days elapsed between ``then`` and ``now`` (floored)."""
    return math.floor((now - then) / timedelta(days=1))


def classify_age(days: int) -> AgingBucket:
    """Return the aging bucket for an item ``days`` past its last receipt.

    Examples:
        >>> classify_age(44).name
        'fresh'
        >>> classify_age(90).name
        'dead'
    """
    for bucket in AGING_BUCKETS:
        if days >= bucket.min_days:
            return bucket
    return FRESH_BUCKET


def estimate_price_and_cost(
    sale_price: float | None,
    unit_cost: float | None,
    price_markup_ratio: float | None = None,
    cost_ratio: float | None = None,
) -> tuple[float, float]:
    """Fill in a missing price or cost from the other.

    Receiving and sales data do not always both describe an item, so a
    missing price is estimated as cost x markup and a missing cost as
    price x cost ratio.

    Returns:
        Tuple of (price, cost); both 0.0 when neither is known
    """
    if price_markup_ratio is None:
        price_markup_ratio = settings.price_markup_ratio
    if cost_ratio is None:
        cost_ratio = settings.cost_ratio

    price = sale_price or 0.0
    cost = unit_cost or 0.0
    if not price and cost:
        price = cost * price_markup_ratio
    if not cost and price:
        cost = price * cost_ratio
    return price, cost


def percent_remaining(still_on_hand: float, received: float) -> int:
    """Integer percentage of received value still on hand (0 when nothing received)."""
    if received <= 0:
        return 0
    return round(still_on_hand / received * 100)


def calculate_store_metrics(
    receive_rows: Iterable[ReceiveRow],
    item_costs: dict[str, float],
    on_hand: dict[str, float],
    now: datetime,
    windows: tuple[int, ...] = HEALTH_WINDOWS,
) -> dict[int, tuple[float, float, int]]:
    """Cost received vs. cost still on hand for each trailing window.

    For each window, received value is the cost of every unit received in
    the window. On-hand value counts the item's current quantity, capped at
    the quantity received in the window, at the average cost of those
    window receipts, so it never exceeds the received value.

    Args:
        receive_rows: All receive rows
        item_costs: Representative unit cost per item
        on_hand: Live quantity on hand per item
        now: Reference time
        windows: Window lengths in days

    Returns:
        Mapping of window days to (received value, on-hand value, percent)
    """
    rows = list(receive_rows)
    metrics: dict[int, tuple[float, float, int]] = {}
    for window in windows:
        cutoff = now - timedelta(days=window)
        qty_in_window: dict[str, int] = {}
        value_in_window: dict[str, float] = {}
        for row in rows:
            if row.received_at < cutoff:
                continue
            cost = row.unit_cost or item_costs.get(row.item_id, 0.0)
            qty_in_window[row.item_id] = qty_in_window.get(row.item_id, 0) + row.qty_received
            value_in_window[row.item_id] = (
                value_in_window.get(row.item_id, 0.0) + row.qty_received * cost
            )

        received_value = sum(value_in_window.values())
        on_hand_value = 0.0
        for item_id, qty_received in qty_in_window.items():
            if qty_received <= 0:
                continue
            qty_on_hand = max(on_hand.get(item_id, 0.0), 0.0)
            on_hand_value += (
                value_in_window[item_id] * min(qty_on_hand, qty_received) / qty_received
            )

        metrics[window] = (
            round(received_value, 2),
            round(on_hand_value, 2),
            percent_remaining(on_hand_value, received_value),
        )
    return metrics


def calculate_velocity(
    sale_rows: Iterable[SaleRow],
    now: datetime,
    window_days: int = VELOCITY_WINDOW_DAYS,
    min_group_size: int = MIN_VELOCITY_GROUP_SIZE,
    store_tz: ZoneInfo | None = None,
) -> tuple[list[VelocityGroup], list[VelocityGroup]]:
    """Average days-to-sell per category and per vendor.

    Days-to-sell for an item is the number of calendar days between its
    first and last sale inside the window, counted in the store's time
    zone. Items whose first and last sale fall on the same day carry no
    velocity signal and are dropped, as are groups with fewer than
    ``min_group_size`` items.

    Returns:
        Tuple of (by category, by vendor), each sorted fastest first
    """
    if store_tz is None:
        store_tz = ZoneInfo(settings.store_timezone)
    cutoff = now - timedelta(days=window_days)
    records = [
        {
            "item_id": row.item_id,
            "sold_on": row.sold_at.astimezone(store_tz).date(),
            "category": row.category,
            "vendor": row.vendor,
        }
        for row in sale_rows
        if row.sold_at >= cutoff
    ]
    if not records:
        return [], []

    frame = pd.DataFrame.from_records(records)
    frame["sold_on"] = pd.to_datetime(frame["sold_on"])
    per_item = frame.groupby("item_id").agg(
        first_sold=("sold_on", "min"),
        last_sold=("sold_on", "max"),
        category=("category", "first"),
        vendor=("vendor", "first"),
    )
    per_item["days_to_sell"] = (per_item["last_sold"] - per_item["first_sold"]).dt.days
    per_item = per_item[per_item["days_to_sell"] > 0]

    return (
        _rank_groups(per_item, "category", min_group_size),
        _rank_groups(per_item, "vendor", min_group_size),
    )


def _rank_groups(per_item: pd.DataFrame, column: str, min_group_size: int) -> list[VelocityGroup]:
    """Mean days-to-sell per group, fastest first, dropping small groups."""
    labelled = per_item[per_item[column].notna() & (per_item[column] != "")]
    if labelled.empty:
        return []

    grouped = (
        labelled.groupby(column)["days_to_sell"]
        .agg(["mean", "count"])
        .reset_index()
    )
    grouped = grouped[grouped["count"] >= min_group_size]
    grouped = grouped.sort_values(["mean", column], kind="mergesort")

    return [
        VelocityGroup(
            name=str(row[column]),
            avg_days_to_sell=round(float(row["mean"]), 1),
            items_sold=int(row["count"]),
        )
        for _, row in grouped.iterrows()
    ]


def build_inventory_analysis(
    receive_rows: list[ReceiveRow],
    sale_rows: list[SaleRow],
    on_hand: dict[str, float],
    now: datetime | None = None,
    price_markup_ratio: float | None = None,
    cost_ratio: float | None = None,
) -> InventoryAnalysis:
    """Compute the inventory_analysis snapshot.

    Args:
        receive_rows: Every receive event
        sale_rows: Every sale event
        on_hand: Live quantity on hand per item ID
        now: Reference time (default: now)
        price_markup_ratio: Price fallback multiplier on cost
        cost_ratio: Cost fallback multiplier on price

    Returns:
        Validated InventoryAnalysis snapshot
    """
    if now is None:
        now = datetime.now(UTC)

    receiving = summarize_receiving(receive_rows)
    sales = summarize_sales(sale_rows)

    counts = {bucket.name: 0 for bucket in (*AGING_BUCKETS, FRESH_BUCKET)}
    values = {bucket.name: 0.0 for bucket in (*AGING_BUCKETS, FRESH_BUCKET)}
    item_costs: dict[str, float] = {}
    aging_items: list[AgingItem] = []
    items_with_receive_data = 0

    for item_id, received in receiving.items():
        item_sales = sales.get(item_id)
        price, cost = estimate_price_and_cost(
            item_sales.max_unit_price if item_sales else None,
            received.max_unit_cost,
            price_markup_ratio,
            cost_ratio,
        )
        item_costs[item_id] = cost

        qty_on_hand = on_hand.get(item_id, 0.0)
        if qty_on_hand <= 0:
            continue

        try:
            age = days_since(received.last_received_at, now)
            bucket = classify_age(age)
            cost_value = round(qty_on_hand * cost, 2)
            retail_value = round(qty_on_hand * price, 2)
            received_date = received.last_received_at.date().isoformat()
        except (TypeError, ValueError, OverflowError) as e:
            logger.warning("Skipping item %s in aging analysis: %s", item_id, e)
            continue

        items_with_receive_data += 1
        counts[bucket.name] += 1
        values[bucket.name] += cost_value

        if age >= AGING_LIST_MIN_DAYS:
            aging_items.append(
                AgingItem(
                    id=item_id,
                    name=received.name or UNKNOWN_ITEM,
                    category=received.category or "",
                    vendor=received.vendor or UNKNOWN_VENDOR,
                    qty_received=received.qty_received,
                    qty_sold=item_sales.qty_sold if item_sales else 0,
                    qty_remaining=qty_on_hand,
                    price=round(price, 2),
                    retail_value=retail_value,
                    cost_value=cost_value,
                    received_date=received_date,
                    days_since_received=age,
                    bucket=bucket.name,
                    suggested_markdown=bucket.suggested_markdown,
                )
            )

    aging_items.sort(key=lambda item: (-item.days_since_received, -item.cost_value, item.id))

    store_metrics = calculate_store_metrics(receive_rows, item_costs, on_hand, now)
    by_category, by_vendor = calculate_velocity(sale_rows, now)

    summary = DeadStockSummary(
        items_fresh=counts["fresh"],
        items_watch=counts["watch"],
        items_60_days=counts["slow"],
        items_90_days=counts["dead"],
        items_120_days=counts["emergency"],
        value_fresh=round(values["fresh"], 2),
        value_watch=round(values["watch"], 2),
        value_60_days=round(values["slow"], 2),
        value_90_days=round(values["dead"], 2),
        value_120_days=round(values["emergency"], 2),
        total_items=sum(counts.values()),
        total_value=round(sum(values.values()), 2),
    )

    metric_fields: dict[str, Any] = {}
    for window, (received_value, on_hand_value, pct) in store_metrics.items():
        metric_fields[f"received_{window}_days"] = received_value
        metric_fields[f"still_on_hand_{window}_days"] = on_hand_value
        metric_fields[f"pct_on_hand_{window}_days"] = pct

    return InventoryAnalysis(
        dead_stock=DeadStock(
            summary=summary,
            store_metrics=StoreMetrics(**metric_fields),
            items=aging_items,
        ),
        velocity=Velocity(by_category=by_category, by_vendor=by_vendor),
        stats=AnalysisStats(
            total_items_analyzed=sum(1 for qty in on_hand.values() if qty > 0),
            total_items_with_receive_data=items_with_receive_data,
            total_dead_stock_items=len(aging_items),
        ),
    )


async def load_receive_rows(session: AsyncSession) -> list[ReceiveRow]:
    """Read every receive event."""
    result = await session.execute(
        select(
            ReceiveEvent.item_id,
            ReceiveEvent.received_at,
            ReceiveEvent.qty_received,
            ReceiveEvent.unit_cost,
            ReceiveEvent.item_name,
            ReceiveEvent.category,
            ReceiveEvent.vendor,
        )
    )
    return [
        ReceiveRow(
            item_id=row.item_id,
            received_at=row.received_at,
            qty_received=row.qty_received or 0,
            unit_cost=_as_float(row.unit_cost),
            item_name=row.item_name,
            category=row.category,
            vendor=row.vendor,
        )
        for row in result
    ]


async def load_sale_rows(
    session: AsyncSession,
    since: date | datetime | None = None,
) -> list[SaleRow]:
    """Read sale events, optionally only those on or after ``since``."""
    query = select(
        SaleEvent.item_id,
        SaleEvent.sold_at,
        SaleEvent.quantity,
        SaleEvent.unit_price,
        SaleEvent.category,
        SaleEvent.vendor,
    )
    if since is not None:
        query = query.where(SaleEvent.sold_at >= since)
    result = await session.execute(query)
    return [
        SaleRow(
            item_id=row.item_id,
            sold_at=row.sold_at,
            quantity=row.quantity or 0,
            unit_price=_as_float(row.unit_price),
            category=row.category,
            vendor=row.vendor,
        )
        for row in result
    ]


async def refresh_inventory_analysis(
    session: AsyncSession,
    client: HeartlandClient,
    now: datetime | None = None,
) -> InventoryAnalysis:
    """Recompute and store the inventory_analysis snapshot.

    The live inventory snapshot is fetched first; if that fails the error
    propagates and the previous snapshot stays in place.

    Args:
        session: Database session
        client: Heartland API client
        now: Reference time (default: now)

    Returns:
        The snapshot that was written
    """
    if now is None:
        now = datetime.now(UTC)

    on_hand = await client.get_inventory_levels()
    logger.info("Fetched on-hand quantities for %d items", len(on_hand))

    receive_rows = await load_receive_rows(session)
    sale_rows = await load_sale_rows(session)

    analysis = build_inventory_analysis(receive_rows, sale_rows, on_hand, now)
    await save_snapshot(session, INVENTORY_ANALYSIS_KEY, analysis, synced_at=now)

    logger.info(
        "Inventory analysis: %d items analyzed, %d aging items, $%.2f tied up",
        analysis.stats.total_items_analyzed,
        analysis.stats.total_dead_stock_items,
        analysis.dead_stock.summary.total_value,
    )
    return analysis
