"""Tests for Heartland data ingestion."""

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError

from boutiqueflow.services.heartland import UNKNOWN_VENDOR, HeartlandAPIError
from boutiqueflow.services.ingestion import (
    IngestionContext,
    ItemMetadata,
    build_receive_values,
    build_sale_values,
    customer_profile_upsert,
    ingest_receiving_window,
    ingest_sales_window,
    parse_timestamp,
    receive_event_upsert,
    sale_event_upsert,
    to_decimal,
    to_quantity,
)

STORE_TZ = ZoneInfo("America/New_York")


@pytest.fixture
def mock_session() -> AsyncMock:
    """Create a mock async database session with savepoint support."""
    session = AsyncMock()
    session.begin_nested = MagicMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def metadata() -> ItemMetadata:
    """Item metadata for a boutique dress."""
    return ItemMetadata(
        item_id="1001",
        name="Linen Wrap Dress",
        category="Dresses",
        size="M",
        color="Sage",
        vendor="Free People",
        brand="Free People",
        cost=Decimal("28.00"),
        price=Decimal("70.00"),
    )


def make_client() -> AsyncMock:
    """Create a mock Heartland client with one item and one vendor."""
    client = AsyncMock()
    client.get_item.return_value = {
        "id": 1001,
        "description": "Linen Wrap Dress",
        "primary_vendor_id": 7,
        "cost": 28,
        "price": 70,
        "custom": {"Color": "Sage", "size": "M", "category": "Dresses"},
    }
    client.get_vendor.return_value = {"id": 7, "name": "Free People"}
    return client


def compile_sql(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


class TestConverters:
    """Tests for API value conversion helpers."""

    def test_to_decimal(self) -> None:
        """Test decimal conversion of API numbers."""
        assert to_decimal("12.50") == Decimal("12.50")
        assert to_decimal(3) == Decimal("3")
        assert to_decimal(None) is None
        assert to_decimal("") is None
        assert to_decimal("n/a") is None

    def test_to_quantity(self) -> None:
        """Test quantity conversion, treating missing values as zero."""
        assert to_quantity("4") == 4
        assert to_quantity(2.0) == 2
        assert to_quantity(None) == 0
        assert to_quantity("bad") == 0

    def test_to_quantity_out_of_range(self) -> None:
        """Test that infinite or NaN quantities are treated as zero."""
        assert to_quantity("inf") == 0
        assert to_quantity(float("-inf")) == 0
        assert to_quantity("nan") == 0

    def test_parse_timestamp_zulu(self) -> None:
        """Test parsing a UTC timestamp with Z suffix."""
        assert parse_timestamp("2026-03-01T14:30:00Z") == datetime(2026, 3, 1, 14, 30, tzinfo=UTC)

    def test_parse_timestamp_naive_is_utc(self) -> None:
        """Test that naive timestamps are treated as UTC."""
        assert parse_timestamp("2026-03-01T14:30:00").tzinfo == UTC

    def test_parse_timestamp_missing(self) -> None:
        """Test that missing timestamps parse to None."""
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None


class TestIngestionContext:
    """Tests for run-scoped lookup caches."""

    async def test_item_metadata_resolves_vendor(self) -> None:
        """Test that item metadata carries the vendor name and custom fields."""
        context = IngestionContext(make_client())

        metadata = await context.item_metadata(1001)

        assert metadata is not None
        assert metadata.name == "Linen Wrap Dress"
        assert metadata.vendor == "Free People"
        assert metadata.brand == "Free People"
        assert metadata.color == "Sage"
        assert metadata.cost == Decimal("28")

    async def test_item_metadata_cached_per_run(self) -> None:
        """Test that each item and vendor is fetched once per context."""
        client = make_client()
        context = IngestionContext(client)

        await context.item_metadata(1001)
        await context.item_metadata("1001")

        assert client.get_item.call_count == 1
        assert client.get_vendor.call_count == 1

    async def test_fresh_context_refetches(self) -> None:
        """Test that caches do not leak between runs."""
        client = make_client()
        await IngestionContext(client).item_metadata(1001)
        await IngestionContext(client).item_metadata(1001)

        assert client.get_item.call_count == 2

    async def test_vendor_failure_resolves_unknown(self) -> None:
        """Test that a failed vendor lookup yields the unknown vendor label."""
        client = make_client()
        client.get_vendor.side_effect = HeartlandAPIError("boom", status_code=500)
        context = IngestionContext(client)

        assert await context.vendor_name(7) == UNKNOWN_VENDOR
        assert "7" not in context.vendor_names

    async def test_missing_vendor_reference(self) -> None:
        """Test that items without a vendor reference resolve to unknown."""
        context = IngestionContext(make_client())
        assert await context.vendor_name(None) == UNKNOWN_VENDOR

    async def test_item_failure_returns_none(self) -> None:
        """Test that a failed item lookup is cached as None."""
        client = make_client()
        client.get_item.side_effect = HeartlandAPIError("not found", status_code=404)
        context = IngestionContext(client)

        assert await context.item_metadata(999) is None
        assert await context.item_metadata(999) is None
        assert client.get_item.call_count == 1


class TestReceiveValues:
    """Tests for building receive event rows."""

    def test_completed_at_preferred(self, metadata: ItemMetadata) -> None:
        """Test that the completion date is used as the received date."""
        receipt = {
            "id": 501,
            "created_at": "2026-02-27T09:00:00Z",
            "completed_at": "2026-03-01T14:30:00Z",
        }
        values = build_receive_values(receipt, {"item_id": 1001, "qty": 6, "unit_cost": "30"}, metadata)

        assert values["received_at"] == datetime(2026, 3, 1, 14, 30, tzinfo=UTC)
        assert values["receipt_id"] == "501"
        assert values["qty_received"] == 6
        assert values["unit_cost"] == Decimal("30")

    def test_created_at_fallback(self, metadata: ItemMetadata) -> None:
        """Test falling back to the creation date."""
        receipt = {"id": 501, "created_at": "2026-02-27T09:00:00Z"}
        values = build_receive_values(receipt, {"item_id": 1001, "qty": 1}, metadata)
        assert values["received_at"] == datetime(2026, 2, 27, 9, 0, tzinfo=UTC)

    def test_item_cost_fallback(self, metadata: ItemMetadata) -> None:
        """Test that the item cost fills in a missing line cost."""
        receipt = {"id": 501, "created_at": "2026-02-27T09:00:00Z"}
        values = build_receive_values(receipt, {"item_id": 1001, "qty": 1}, metadata)
        assert values["unit_cost"] == Decimal("28.00")

    def test_missing_date_raises(self, metadata: ItemMetadata) -> None:
        """Test that a receipt without any date is rejected."""
        with pytest.raises(ValueError, match="no date"):
            build_receive_values({"id": 501}, {"item_id": 1001}, metadata)

    def test_upsert_targets_natural_key(self, metadata: ItemMetadata) -> None:
        """Test that receive upserts conflict on (item_id, receipt_id)."""
        receipt = {"id": 501, "created_at": "2026-02-27T09:00:00Z"}
        values = build_receive_values(receipt, {"item_id": 1001, "qty": 1}, metadata)

        sql = compile_sql(receive_event_upsert(values))

        assert "ON CONFLICT ON CONSTRAINT uq_receive_events_item_receipt DO UPDATE" in sql
        assert "qty_received = excluded.qty_received" in sql


class TestSaleValues:
    """Tests for building sale event rows."""

    def test_local_day_and_hour(self, metadata: ItemMetadata) -> None:
        """Test that day and hour are derived in the store's time zone."""
        row = {
            "id": 9,
            "ticket_id": 300,
            "item_id": 1001,
            "customer_id": 42,
            "qty": 2,
            "unit_price": "70.00",
            "completed_at": "2026-03-07T15:00:00Z",
        }
        values = build_sale_values(row, metadata, STORE_TZ)

        assert values is not None
        # 10:00 on Saturday in New York
        assert values["day_of_week"] == 5
        assert values["hour_of_day"] == 10
        assert values["customer_id"] == "42"
        assert values["total_amount"] == Decimal("140.00")

    def test_late_night_sale_rolls_back_a_day(self, metadata: ItemMetadata) -> None:
        """Test that a UTC early-morning sale counts on the previous local day."""
        row = {"ticket_id": 1, "item_id": 1001, "qty": 1, "created_at": "2026-07-01T02:30:00Z"}
        values = build_sale_values(row, metadata, STORE_TZ)

        assert values is not None
        assert values["day_of_week"] == 1
        assert values["hour_of_day"] == 22

    def test_missing_line_id_uses_sentinel(self, metadata: ItemMetadata) -> None:
        """Test that rows without a line ID get the sentinel line."""
        row = {"ticket_id": 1, "item_id": 1001, "qty": 1, "created_at": "2026-03-07T15:00:00Z"}
        values = build_sale_values(row, metadata, STORE_TZ)
        assert values is not None
        assert values["line_id"] == "0"

    def test_row_fields_win_over_metadata(self, metadata: ItemMetadata) -> None:
        """Test that descriptive fields on the row override item metadata."""
        row = {
            "ticket_id": 1,
            "item_id": 1001,
            "created_at": "2026-03-07T15:00:00Z",
            "category": "Sale Rack",
        }
        values = build_sale_values(row, metadata, STORE_TZ)
        assert values is not None
        assert values["category"] == "Sale Rack"
        assert values["vendor"] == "Free People"

    def test_unattributable_row(self, metadata: ItemMetadata) -> None:
        """Test that rows without ticket or timestamp are rejected."""
        assert build_sale_values({"item_id": 1001, "created_at": "2026-03-07"}, metadata) is None
        assert build_sale_values({"item_id": 1001, "ticket_id": 1}, metadata) is None

    def test_upsert_updates_amounts_only(self, metadata: ItemMetadata) -> None:
        """Test that a re-synced sale only refreshes quantity and amounts."""
        row = {"ticket_id": 1, "item_id": 1001, "qty": 1, "created_at": "2026-03-07T15:00:00Z"}
        values = build_sale_values(row, metadata, STORE_TZ)

        sql = compile_sql(sale_event_upsert(values))

        assert "ON CONFLICT ON CONSTRAINT uq_sale_events_ticket_line DO UPDATE" in sql
        assert "quantity = excluded.quantity" in sql
        assert "category = excluded.category" not in sql


class TestCustomerProfileUpsert:
    """Tests for customer profile upserts."""

    def test_conflicts_on_customer_id(self) -> None:
        """Test that profiles are replaced by customer ID."""
        values = {
            "customer_id": "42",
            "total_purchases": 3,
            "lifetime_value": Decimal("250.00"),
            "preferred_brands": ["Free People"],
        }
        sql = compile_sql(customer_profile_upsert(values))

        assert "ON CONFLICT (customer_id) DO UPDATE" in sql
        assert "lifetime_value = excluded.lifetime_value" in sql


class TestIngestReceivingWindow:
    """Tests for ingest_receiving_window."""

    async def test_upserts_each_line(self, mock_session: AsyncMock) -> None:
        """Test that every line of every receipt is upserted."""
        client = make_client()
        client.list_receipts.return_value = [
            {"id": 501, "completed_at": "2026-03-01T14:30:00Z"},
        ]
        client.list_receipt_lines.return_value = [
            {"id": 1, "item_id": 1001, "qty": 4},
            {"id": 2, "item_id": 1001, "qty": 2},
        ]

        result = await ingest_receiving_window(
            mock_session, IngestionContext(client), datetime(2026, 1, 1, tzinfo=UTC)
        )

        assert result.records_upserted == 2
        assert result.records_skipped == 0
        assert mock_session.execute.call_count == 2
        assert mock_session.begin_nested.call_count == 2

    async def test_listing_failure_propagates(self, mock_session: AsyncMock) -> None:
        """Test that a failed receipt listing aborts the window."""
        client = make_client()
        client.list_receipts.side_effect = HeartlandAPIError("down", status_code=503)

        with pytest.raises(HeartlandAPIError):
            await ingest_receiving_window(
                mock_session, IngestionContext(client), datetime(2026, 1, 1, tzinfo=UTC)
            )

        mock_session.execute.assert_not_called()

    async def test_line_fetch_failure_skips_receipt(self, mock_session: AsyncMock) -> None:
        """Test that one unreadable receipt does not stop the others."""
        client = make_client()
        client.list_receipts.return_value = [
            {"id": 501, "completed_at": "2026-03-01T14:30:00Z"},
            {"id": 502, "completed_at": "2026-03-02T14:30:00Z"},
        ]
        client.list_receipt_lines.side_effect = [
            HeartlandAPIError("timeout"),
            [{"id": 3, "item_id": 1001, "qty": 1}],
        ]

        result = await ingest_receiving_window(
            mock_session, IngestionContext(client), datetime(2026, 1, 1, tzinfo=UTC)
        )

        assert result.records_upserted == 1
        assert len(result.errors) == 1

    async def test_store_error_skips_row(self, mock_session: AsyncMock) -> None:
        """Test that a failed upsert is recorded and the next row proceeds."""
        client = make_client()
        client.list_receipts.return_value = [{"id": 501, "completed_at": "2026-03-01T14:30:00Z"}]
        client.list_receipt_lines.return_value = [
            {"id": 1, "item_id": 1001, "qty": 4},
            {"id": 2, "item_id": 1001, "qty": 2},
        ]
        mock_session.execute.side_effect = [
            IntegrityError("INSERT", {}, Exception("constraint")),
            MagicMock(),
        ]

        result = await ingest_receiving_window(
            mock_session, IngestionContext(client), datetime(2026, 1, 1, tzinfo=UTC)
        )

        assert result.records_upserted == 1
        assert result.records_skipped == 1
        assert "receive event 1001/501" in result.errors[0]

    async def test_item_lookup_failure_skips_line(self, mock_session: AsyncMock) -> None:
        """Test that an unreadable item drops only its own line."""
        client = make_client()
        good_item = client.get_item.return_value
        client.get_item.side_effect = [
            HeartlandAPIError("Invalid JSON response: Expecting value", status_code=200),
            good_item,
        ]
        client.list_receipts.return_value = [{"id": 501, "completed_at": "2026-03-01T14:30:00Z"}]
        client.list_receipt_lines.return_value = [
            {"id": 1, "item_id": 2002, "qty": 3},
            {"id": 2, "item_id": 1001, "qty": 2},
        ]

        result = await ingest_receiving_window(
            mock_session, IngestionContext(client), datetime(2026, 1, 1, tzinfo=UTC)
        )

        assert result.records_upserted == 1
        assert result.records_skipped == 1
        assert mock_session.execute.call_count == 1


class TestIngestSalesWindow:
    """Tests for ingest_sales_window."""

    async def test_upserts_and_skips(self, mock_session: AsyncMock) -> None:
        """Test that unattributable rows are skipped and the rest upserted."""
        client = make_client()
        client.list_sales_lines.return_value = [
            {"id": 1, "ticket_id": 300, "item_id": 1001, "qty": 1, "created_at": "2026-03-07T15:00:00Z"},
            {"id": 2, "ticket_id": 300, "qty": 1, "created_at": "2026-03-07T15:00:00Z"},
            {"id": 3, "item_id": 1001, "qty": 1, "created_at": "2026-03-07T15:00:00Z"},
        ]

        result = await ingest_sales_window(
            mock_session, IngestionContext(client), datetime(2026, 1, 1, tzinfo=UTC)
        )

        assert result.records_upserted == 1
        assert result.records_skipped == 2
        # Metadata fetched once for the one distinct item
        assert client.get_item.call_count == 1
