"""SaleEvent model for point-of-sale ticket lines."""

import uuid
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import Index, Integer, Numeric, SmallInteger, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from boutiqueflow.database import Base

# Line ID stored when the sales feed omits one
DEFAULT_LINE_ID = "0"


class SaleEvent(Base):
    """One sold line on a POS ticket.

    Quantity and amount fields are refreshed when a ticket line is synced
    again; descriptive fields keep the values captured on first insert.

    Attributes:
        id: Unique identifier (UUID)
        ticket_id: Heartland ticket ID
        line_id: Ticket line ID (DEFAULT_LINE_ID when absent)
        customer_id: Heartland customer ID (None for walk-ins)
        item_id: Heartland item ID
        sold_at: Transaction timestamp
        day_of_week: 0=Monday .. 6=Sunday, derived from sold_at
        hour_of_day: 0..23, derived from sold_at
        quantity: Units sold
        unit_price: Price per unit
        total_amount: Extended line amount
        category, vendor, brand, item_name, size, color: Item attributes
        location: Store location label
        created_at: Timestamp when the record was created
    """

    __tablename__ = "sale_events"
    __table_args__ = (
        UniqueConstraint(
            "ticket_id",
            "line_id",
            name="uq_sale_events_ticket_line",
        ),
        Index("idx_sale_events_item_sold", "item_id", "sold_at"),
        Index("idx_sale_events_customer", "customer_id"),
        Index("idx_sale_events_sold_at", "sold_at", postgresql_using="brin"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    ticket_id: Mapped[str] = mapped_column(String(64), nullable=False)
    line_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default=DEFAULT_LINE_ID,
    )
    customer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    sold_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
    )
    day_of_week: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    hour_of_day: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unit_price: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=True,
    )
    total_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=True,
    )
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vendor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    brand: Mapped[str | None] = mapped_column(String(255), nullable=True)
    item_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    size: Mapped[str | None] = mapped_column(String(50), nullable=True)
    color: Mapped[str | None] = mapped_column(String(100), nullable=True)
    location: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<SaleEvent(ticket_id={self.ticket_id!r}, "
            f"line_id={self.line_id!r}, "
            f"item_id={self.item_id!r}, "
            f"quantity={self.quantity!r})>"
        )
