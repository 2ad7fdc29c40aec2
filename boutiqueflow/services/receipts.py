"""Receiving queue: receipt listing, receipt detail and processing status."""

import logging
from datetime import UTC, date, datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from boutiqueflow.models.analysis_cache import RECEIPTS_KEY
from boutiqueflow.models.processing_status import (
    EntityType,
    ProcessingState,
    ProcessingStatus,
)
from boutiqueflow.services.heartland import UNKNOWN_VENDOR, HeartlandAPIError
from boutiqueflow.services.ingestion import IngestionContext
from boutiqueflow.services.snapshots import ReceiptListing, ReceiptSummary, save_snapshot

logger = logging.getLogger(__name__)

RECEIPT_ID_PREFIX = "REC-"
ITEM_ID_PREFIX = "ITEM-"

# Receipt listing window and size
RECENT_RECEIPT_DAYS = 30
RECENT_RECEIPT_LIMIT = 50

RECEIPT_STATUS_MAP = {
    "complete": "completed",
    "pending": "new",
}


def map_receipt_status(upstream_status: str | None) -> str:
    """Translate a Heartland receipt status into a queue status."""
    return RECEIPT_STATUS_MAP.get(upstream_status or "", "in_progress")


def parse_receipt_id(value: str) -> str:
    """Strip the display prefix from a receipt ID ('REC-123' -> '123')."""
    return value.removeprefix(RECEIPT_ID_PREFIX)


def _date_part(value: str | None) -> str | None:
    return value.split("T")[0] if value else None


async def summarize_receipt(
    receipt: dict[str, Any],
    context: IngestionContext,
) -> ReceiptSummary:
    """Build a queue row for a receipt.

    The vendor is taken from the first line's item; lookup failures leave it
    as UNKNOWN_VENDOR rather than dropping the receipt.
    """
    vendor = UNKNOWN_VENDOR
    item_count = 0
    try:
        item_count, first_lines = await context.client.count_receipt_lines(receipt["id"])
        if first_lines and first_lines[0].get("item_id") is not None:
            metadata = await context.item_metadata(first_lines[0]["item_id"])
            if metadata is not None:
                vendor = metadata.vendor
    except HeartlandAPIError as e:
        logger.warning("Could not fetch lines for receipt %s: %s", receipt["id"], e)

    heartland_id = str(receipt["id"])
    receipt_date = (
        _date_part(receipt.get("updated_at"))
        or _date_part(receipt.get("created_at"))
        or datetime.now(UTC).date().isoformat()
    )
    return ReceiptSummary(
        id=f"{RECEIPT_ID_PREFIX}{heartland_id}",
        heartland_id=heartland_id,
        date=receipt_date,
        vendor=vendor,
        po_number=receipt.get("public_id") or f"{RECEIPT_ID_PREFIX}{heartland_id}",
        item_count=item_count,
        status=map_receipt_status(receipt.get("status")),
    )


async def build_receipt_listing(
    context: IngestionContext,
    since: date | datetime | None = None,
    limit: int = RECENT_RECEIPT_LIMIT,
) -> ReceiptListing:
    """List the most recently updated receipts for the receiving queue.

    Receipts are processed one at a time to stay within Heartland's rate
    limits.
    """
    if since is None:
        since = datetime.now(UTC) - timedelta(days=RECENT_RECEIPT_DAYS)

    receipts = await context.client.list_recent_receipts(since, limit=limit)
    summaries = []
    for receipt in receipts:
        if receipt.get("id") is None:
            continue
        summaries.append(await summarize_receipt(receipt, context))
    return ReceiptListing(receipts=summaries)


async def refresh_receipt_listing(
    session: AsyncSession,
    context: IngestionContext,
) -> ReceiptListing:
    """Rebuild and store the receipts snapshot."""
    listing = await build_receipt_listing(context)
    await save_snapshot(session, RECEIPTS_KEY, listing)
    logger.info("Cached %d receipts", len(listing.receipts))
    return listing


async def get_processing_statuses(
    session: AsyncSession,
    entity_type: EntityType,
    entity_ids: list[str],
) -> dict[str, ProcessingStatus]:
    """Fetch processing statuses keyed by entity ID."""
    if not entity_ids:
        return {}
    result = await session.execute(
        select(ProcessingStatus)
        .where(ProcessingStatus.entity_type == entity_type.value)
        .where(ProcessingStatus.entity_id.in_(entity_ids))
    )
    return {status.entity_id: status for status in result.scalars().all()}


async def set_processing_status(
    session: AsyncSession,
    entity_type: EntityType,
    entity_id: str,
    status: ProcessingState,
    processed_by: str | None = None,
    receipt_id: str | None = None,
) -> ProcessingStatus:
    """Record the processing status of an item or grid (last write wins).

    Returns:
        The stored ProcessingStatus row
    """
    stmt = insert(ProcessingStatus).values(
        entity_type=entity_type.value,
        entity_id=entity_id,
        receipt_id=receipt_id,
        status=status.value,
        processed_at=datetime.now(UTC),
        processed_by=processed_by,
    )
    stmt = stmt.on_conflict_do_update(
        constraint="uq_processing_statuses_entity",
        set_={
            "status": stmt.excluded.status,
            "processed_at": func.now(),
            "processed_by": stmt.excluded.processed_by,
            "receipt_id": func.coalesce(stmt.excluded.receipt_id, ProcessingStatus.receipt_id),
        },
    ).returning(ProcessingStatus)

    result = await session.execute(stmt)
    row: ProcessingStatus = result.scalar_one()
    logger.info(
        "%s %s marked %s by %s",
        entity_type.value,
        entity_id,
        status.value,
        processed_by or "unknown",
    )
    return row


async def build_receipt_detail(
    session: AsyncSession,
    context: IngestionContext,
    receipt_id: str,
) -> dict[str, Any]:
    """Fetch a receipt with its lines, item metadata and processing status.

    Raises:
        HeartlandAPIError: If the receipt or its lines cannot be fetched.
    """
    heartland_id = parse_receipt_id(receipt_id)
    receipt = await context.client.get_receipt(heartland_id)
    lines = await context.client.list_receipt_lines(heartland_id)

    item_ids = [str(line["item_id"]) for line in lines if line.get("item_id") is not None]
    statuses = await get_processing_statuses(session, EntityType.ITEM, item_ids)

    vendor = UNKNOWN_VENDOR
    items = []
    for line in lines:
        item_id = line.get("item_id")
        metadata = await context.item_metadata(item_id) if item_id is not None else None
        if metadata is not None and vendor == UNKNOWN_VENDOR:
            vendor = metadata.vendor
        status = statuses.get(str(item_id))
        items.append(
            {
                "id": f"{ITEM_ID_PREFIX}{line.get('id')}",
                "heartlandItemId": str(item_id) if item_id is not None else None,
                "heartlandLineId": str(line.get("id")),
                "name": metadata.name if metadata else "Unknown Item",
                "color": metadata.color if metadata else "",
                "size": metadata.size if metadata else "",
                "category": metadata.category if metadata else "",
                "status": status.status if status else ProcessingState.NEW.value,
                "qty": line.get("qty"),
                "unitCost": line.get("unit_cost"),
            }
        )

    return {
        "id": f"{RECEIPT_ID_PREFIX}{heartland_id}",
        "heartlandId": str(receipt.get("id", heartland_id)),
        "date": _date_part(receipt.get("created_at")) or datetime.now(UTC).date().isoformat(),
        "vendor": vendor,
        "poNumber": receipt.get("public_id") or f"{RECEIPT_ID_PREFIX}{heartland_id}",
        "itemCount": len(items),
        "status": map_receipt_status(receipt.get("status")),
        "items": items,
    }
