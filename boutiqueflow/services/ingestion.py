"""Ingestion of Heartland receiving, sales and customer data.

This module pulls bulk data from the Heartland API and upserts normalized
rows into the local store:
- receive_events: one row per (item, receiving document)
- sale_events: one row per (ticket, line)
- customer_profiles: one row per customer, rebuilt from sale_events

Every write is an upsert keyed on the table's natural unique constraint, so
re-running a window with overlapping dates never duplicates rows.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy import distinct, func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.dml import Insert

from boutiqueflow.config import settings
from boutiqueflow.models.customer_profile import CustomerProfile
from boutiqueflow.models.receive_event import ReceiveEvent
from boutiqueflow.models.sale_event import DEFAULT_LINE_ID, SaleEvent
from boutiqueflow.services.heartland import (
    UNKNOWN_ITEM,
    UNKNOWN_VENDOR,
    HeartlandAPIError,
    HeartlandClient,
    item_brand,
    item_category,
    item_color,
    item_size,
)

logger = logging.getLogger(__name__)

# Number of entries kept in each preferred_* list on a customer profile
PREFERENCE_LIMIT = 5


@dataclass(frozen=True)
class ItemMetadata:
    """Descriptive attributes of a Heartland item, resolved once per run."""

    item_id: str
    name: str
    category: str
    size: str
    color: str
    vendor: str
    brand: str
    cost: Decimal | None = None
    price: Decimal | None = None
    long_description: str = ""


@dataclass
class IngestionResult:
    """Outcome of one ingestion stage."""

    records_upserted: int = 0
    records_skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "records_upserted": self.records_upserted,
            "records_skipped": self.records_skipped,
            "errors": self.errors,
        }


def to_decimal(value: Any) -> Decimal | None:
    """Convert an API number (int, float or string) to Decimal.

    Returns:
        The Decimal value, or None for missing or unparseable input.
    """
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def to_quantity(value: Any) -> int:
    """Convert an API quantity to an int, treating missing values as 0."""
    if value is None or value == "":
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO 8601 timestamp from the API.

    Naive timestamps and bare dates are assumed to be UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, datetime.min.time())
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class IngestionContext:
    """Lookup caches scoped to a single sync run.

    Vendor names and item metadata are fetched from Heartland at most once
    per run. A new context is created for every run, so nothing leaks
    between runs.
    """

    def __init__(self, client: HeartlandClient) -> None:
        self.client = client
        self.vendor_names: dict[str, str] = {}
        self.items: dict[str, ItemMetadata | None] = {}

    async def vendor_name(self, vendor_id: Any) -> str:
        """Resolve a vendor ID to its display name.

        Lookup failures resolve to UNKNOWN_VENDOR and are not cached, so a
        later line can retry.
        """
        if not vendor_id:
            return UNKNOWN_VENDOR

        key = str(vendor_id)
        if key in self.vendor_names:
            return self.vendor_names[key]

        try:
            vendor = await self.client.get_vendor(key)
        except HeartlandAPIError as e:
            logger.warning("Could not fetch vendor %s: %s", key, e)
            return UNKNOWN_VENDOR

        name = vendor.get("name") or UNKNOWN_VENDOR
        self.vendor_names[key] = name
        return name

    async def item_metadata(self, item_id: Any) -> ItemMetadata | None:
        """Resolve an item's metadata, or None if Heartland lookup fails."""
        key = str(item_id)
        if key in self.items:
            return self.items[key]

        try:
            item = await self.client.get_item(key)
        except HeartlandAPIError as e:
            logger.warning("Could not fetch item %s: %s", key, e)
            self.items[key] = None
            return None

        vendor = await self.vendor_name(item.get("primary_vendor_id"))
        metadata = ItemMetadata(
            item_id=key,
            name=item.get("description") or UNKNOWN_ITEM,
            category=item_category(item),
            size=item_size(item),
            color=item_color(item),
            vendor=vendor,
            brand=item_brand(item) or vendor,
            cost=to_decimal(item.get("cost")),
            price=to_decimal(item.get("price")),
            long_description=item.get("long_description") or "",
        )
        self.items[key] = metadata
        return metadata


# --- Receiving ---


def build_receive_values(
    receipt: dict[str, Any],
    line: dict[str, Any],
    metadata: ItemMetadata,
) -> dict[str, Any]:
    """Build the receive_events column values for one receipt line."""
    received_at = parse_timestamp(
        receipt.get("completed_at")
        or receipt.get("created_at")
        or receipt.get("updated_at")
    )
    if received_at is None:
        raise ValueError(f"Receipt {receipt.get('id')} has no date")

    unit_cost = to_decimal(line.get("unit_cost"))
    if unit_cost is None:
        unit_cost = metadata.cost

    return {
        "item_id": metadata.item_id,
        "receipt_id": str(receipt["id"]),
        "received_at": received_at,
        "qty_received": to_quantity(line.get("qty")),
        "unit_cost": unit_cost,
        "item_name": metadata.name,
        "category": metadata.category or None,
        "vendor": metadata.vendor,
        "color": metadata.color or None,
        "size": metadata.size or None,
    }


def receive_event_upsert(values: dict[str, Any]) -> Insert:
    """INSERT ... ON CONFLICT statement for a receive event.

    A re-synced receipt line overwrites quantity, cost, date and metadata.
    """
    stmt = insert(ReceiveEvent).values(**values)
    return stmt.on_conflict_do_update(
        constraint="uq_receive_events_item_receipt",
        set_={
            "received_at": stmt.excluded.received_at,
            "qty_received": stmt.excluded.qty_received,
            "unit_cost": stmt.excluded.unit_cost,
            "item_name": stmt.excluded.item_name,
            "category": stmt.excluded.category,
            "vendor": stmt.excluded.vendor,
            "color": stmt.excluded.color,
            "size": stmt.excluded.size,
            "updated_at": func.now(),
        },
    )


async def _execute_upsert(
    session: AsyncSession,
    stmt: Insert,
    description: str,
    result: IngestionResult,
) -> None:
    """Execute one upsert inside a savepoint, recording rather than raising errors."""
    try:
        async with session.begin_nested():
            await session.execute(stmt)
    except SQLAlchemyError as e:
        logger.error("Failed to upsert %s: %s", description, e)
        result.records_skipped += 1
        result.errors.append(f"{description}: {e}")
        return
    result.records_upserted += 1


async def ingest_receiving_window(
    session: AsyncSession,
    context: IngestionContext,
    since: date | datetime,
) -> IngestionResult:
    """Upsert receive events for every completed receipt created since ``since``.

    A failure listing the receipts propagates to the caller and aborts the
    window. Failures fetching one receipt's lines or one item's metadata are
    logged and only drop the affected lines.

    Args:
        session: Database session
        context: Run-scoped lookup caches (holds the Heartland client)
        since: Earliest receipt creation date

    Returns:
        IngestionResult with upserted/skipped counts
    """
    result = IngestionResult()
    receipts = await context.client.list_receipts(since)
    logger.info("Fetched %d completed receipts since %s", len(receipts), since)

    for receipt in receipts:
        receipt_id = receipt.get("id")
        if receipt_id is None:
            result.records_skipped += 1
            continue

        try:
            lines = await context.client.list_receipt_lines(receipt_id)
        except HeartlandAPIError as e:
            logger.warning("Skipping receipt %s, could not fetch lines: %s", receipt_id, e)
            result.errors.append(f"receipt {receipt_id}: {e}")
            continue

        for line in lines:
            item_id = line.get("item_id")
            if item_id is None:
                result.records_skipped += 1
                continue

            metadata = await context.item_metadata(item_id)
            if metadata is None:
                result.records_skipped += 1
                continue

            try:
                values = build_receive_values(receipt, line, metadata)
            except ValueError as e:
                logger.warning("Skipping line %s: %s", line.get("id"), e)
                result.records_skipped += 1
                continue

            await _execute_upsert(
                session,
                receive_event_upsert(values),
                f"receive event {item_id}/{receipt_id}",
                result,
            )

    logger.info(
        "Receiving window: %d upserted, %d skipped",
        result.records_upserted,
        result.records_skipped,
    )
    return result


# --- Sales ---


def build_sale_values(
    row: dict[str, Any],
    metadata: ItemMetadata | None,
    store_tz: ZoneInfo | None = None,
) -> dict[str, Any] | None:
    """Build the sale_events column values for one sales line.

    Day-of-week and hour-of-day are derived in the store's local time zone.

    Returns:
        Column values, or None if the row cannot be attributed to a
        ticket, an item and a timestamp.
    """
    item_id = row.get("item_id")
    ticket_id = row.get("ticket_id") or row.get("sales_ticket_id")
    sold_at = parse_timestamp(
        row.get("completed_at") or row.get("created_at") or row.get("date")
    )
    if item_id is None or ticket_id is None or sold_at is None:
        return None

    if store_tz is None:
        store_tz = ZoneInfo(settings.store_timezone)
    local_time = sold_at.astimezone(store_tz)

    quantity = to_quantity(row.get("qty") if row.get("qty") is not None else row.get("quantity"))
    unit_price = to_decimal(row.get("unit_price"))
    if unit_price is None:
        unit_price = to_decimal(row.get("price"))
    total_amount = to_decimal(row.get("value"))
    if total_amount is None:
        total_amount = to_decimal(row.get("total"))
    if total_amount is None and unit_price is not None:
        total_amount = unit_price * quantity

    line_id = row.get("id") or row.get("line_id")
    customer_id = row.get("customer_id")

    def described(field_name: str, fallback: str) -> str | None:
        return row.get(field_name) or fallback or None

    return {
        "ticket_id": str(ticket_id),
        "line_id": str(line_id) if line_id is not None else DEFAULT_LINE_ID,
        "customer_id": str(customer_id) if customer_id is not None else None,
        "item_id": str(item_id),
        "sold_at": sold_at,
        "day_of_week": local_time.weekday(),
        "hour_of_day": local_time.hour,
        "quantity": quantity,
        "unit_price": unit_price,
        "total_amount": total_amount,
        "category": described("category", metadata.category if metadata else ""),
        "vendor": described("vendor", metadata.vendor if metadata else ""),
        "brand": described("brand", metadata.brand if metadata else ""),
        "item_name": described("item_description", metadata.name if metadata else ""),
        "size": described("size", metadata.size if metadata else ""),
        "color": described("color", metadata.color if metadata else ""),
        "location": row.get("location_name") or row.get("location") or None,
    }


def sale_event_upsert(values: dict[str, Any]) -> Insert:
    """INSERT ... ON CONFLICT statement for a sale event.

    Only quantity and amounts are refreshed on conflict; descriptive fields
    keep the values from the first insert.
    """
    stmt = insert(SaleEvent).values(**values)
    return stmt.on_conflict_do_update(
        constraint="uq_sale_events_ticket_line",
        set_={
            "quantity": stmt.excluded.quantity,
            "unit_price": stmt.excluded.unit_price,
            "total_amount": stmt.excluded.total_amount,
        },
    )


async def ingest_sales_window(
    session: AsyncSession,
    context: IngestionContext,
    since: date | datetime,
) -> IngestionResult:
    """Upsert sale events for every sales line since ``since``.

    Item metadata is resolved once per distinct item and only fills in
    descriptive fields the sales row does not carry itself.

    Args:
        session: Database session
        context: Run-scoped lookup caches (holds the Heartland client)
        since: Earliest sale date

    Returns:
        IngestionResult with upserted/skipped counts
    """
    result = IngestionResult()
    rows = await context.client.list_sales_lines(since)
    logger.info("Fetched %d sales lines since %s", len(rows), since)
    store_tz = ZoneInfo(settings.store_timezone)

    for row in rows:
        item_id = row.get("item_id")
        if item_id is None:
            result.records_skipped += 1
            continue

        metadata = await context.item_metadata(item_id)
        try:
            values = build_sale_values(row, metadata, store_tz)
        except ValueError as e:
            logger.warning("Skipping sales line %s: %s", row.get("id"), e)
            values = None
        if values is None:
            result.records_skipped += 1
            continue

        await _execute_upsert(
            session,
            sale_event_upsert(values),
            f"sale event {values['ticket_id']}/{values['line_id']}",
            result,
        )

    logger.info(
        "Sales window: %d upserted, %d skipped",
        result.records_upserted,
        result.records_skipped,
    )
    return result


# --- Customers ---


async def _top_values(
    session: AsyncSession,
    customer_id: str,
    column: Any,
    limit: int = PREFERENCE_LIMIT,
) -> list[str]:
    """Most frequently purchased values of a sale_events column for a customer."""
    result = await session.execute(
        select(column, func.count().label("purchases"))
        .where(SaleEvent.customer_id == customer_id)
        .where(column.is_not(None))
        .group_by(column)
        .order_by(func.count().desc(), column)
        .limit(limit)
    )
    return [row[0] for row in result]


async def build_customer_profile_values(
    session: AsyncSession,
    customer: dict[str, Any],
) -> dict[str, Any]:
    """Aggregate a customer's sale events into customer_profiles column values."""
    customer_id = str(customer["id"])

    stats_result = await session.execute(
        select(
            func.count(distinct(SaleEvent.ticket_id)),
            func.coalesce(func.sum(SaleEvent.total_amount), 0),
            func.min(SaleEvent.sold_at),
            func.max(SaleEvent.sold_at),
        ).where(SaleEvent.customer_id == customer_id)
    )
    total_purchases, lifetime_value, first_purchase, last_purchase = stats_result.one()
    total_purchases = int(total_purchases or 0)
    lifetime_value = Decimal(str(lifetime_value or 0))
    avg_purchase = (
        (lifetime_value / total_purchases).quantize(Decimal("0.01"))
        if total_purchases
        else None
    )

    return {
        "customer_id": customer_id,
        "first_name": customer.get("first_name"),
        "last_name": customer.get("last_name"),
        "email": customer.get("email"),
        "phone": customer.get("phone") or customer.get("phone_number"),
        "total_purchases": total_purchases,
        "lifetime_value": lifetime_value,
        "avg_purchase_value": avg_purchase,
        "first_purchase_at": first_purchase,
        "last_purchase_at": last_purchase,
        "preferred_brands": await _top_values(session, customer_id, SaleEvent.brand),
        "preferred_sizes": await _top_values(session, customer_id, SaleEvent.size),
        "preferred_categories": await _top_values(session, customer_id, SaleEvent.category),
    }


def customer_profile_upsert(values: dict[str, Any]) -> Insert:
    """INSERT ... ON CONFLICT statement replacing a customer's profile."""
    stmt = insert(CustomerProfile).values(**values)
    update_columns = {
        name: getattr(stmt.excluded, name)
        for name in values
        if name != "customer_id"
    }
    update_columns["updated_at"] = func.now()
    return stmt.on_conflict_do_update(
        index_elements=[CustomerProfile.customer_id],
        set_=update_columns,
    )


async def rebuild_customer_profiles(
    session: AsyncSession,
    client: HeartlandClient,
) -> IngestionResult:
    """Recompute every customer's profile from sale_events.

    Runs one set of aggregate queries per customer, which is acceptable on
    a nightly cadence.

    Args:
        session: Database session
        client: Heartland API client

    Returns:
        IngestionResult with upserted/skipped counts
    """
    result = IngestionResult()
    customers = await client.list_customers()
    logger.info("Rebuilding profiles for %d customers", len(customers))

    for customer in customers:
        if customer.get("id") is None:
            result.records_skipped += 1
            continue
        try:
            values = await build_customer_profile_values(session, customer)
        except SQLAlchemyError as e:
            logger.error("Failed to aggregate customer %s: %s", customer.get("id"), e)
            result.records_skipped += 1
            result.errors.append(f"customer {customer.get('id')}: {e}")
            continue

        await _execute_upsert(
            session,
            customer_profile_upsert(values),
            f"customer profile {values['customer_id']}",
            result,
        )

    logger.info(
        "Customer profiles: %d upserted, %d skipped",
        result.records_upserted,
        result.records_skipped,
    )
    return result
