"""ReceiveEvent model for inventory receiving history."""

import uuid
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from boutiqueflow.database import Base


class ReceiveEvent(Base):
    """One received line: a single item on a single receiving document.

    Rows are upserted by the receiving sync and never deleted. Re-syncing
    the same receipt overwrites quantity, cost, and descriptive fields.

    Attributes:
        id: Unique identifier (UUID)
        item_id: Heartland item ID
        receipt_id: Heartland receiving document ID
        received_at: When the receipt was created upstream
        qty_received: Units received on this line
        unit_cost: Cost per unit on this line
        item_name: Item description at time of receipt
        category: Item category at time of receipt
        vendor: Primary vendor name at time of receipt
        color: Item color at time of receipt
        size: Item size at time of receipt
        created_at: Timestamp when the record was created
        updated_at: Timestamp when the record was last upserted
    """

    __tablename__ = "receive_events"
    __table_args__ = (
        UniqueConstraint(
            "item_id",
            "receipt_id",
            name="uq_receive_events_item_receipt",
        ),
        Index(
            "idx_receive_events_item_received",
            "item_id",
            "received_at",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    item_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    receipt_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    received_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
    )
    qty_received: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    unit_cost: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=True,
    )
    item_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vendor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    color: Mapped[str | None] = mapped_column(String(100), nullable=True)
    size: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<ReceiveEvent(item_id={self.item_id!r}, "
            f"receipt_id={self.receipt_id!r}, "
            f"qty_received={self.qty_received!r})>"
        )
