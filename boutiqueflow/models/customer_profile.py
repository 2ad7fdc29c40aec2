"""CustomerProfile model for aggregated purchase history."""

import uuid
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import Integer, Numeric, String
from sqlalchemy.dialects.postgresql import JSON, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from boutiqueflow.database import Base


class CustomerProfile(Base):
    """Per-customer purchase statistics derived from sale_events.

    Profiles are rebuilt wholesale by the nightly sync; nothing here is
    maintained incrementally.

    Attributes:
        id: Unique identifier (UUID)
        customer_id: Heartland customer ID
        first_name, last_name, email, phone: Contact details
        total_purchases: Number of distinct tickets
        lifetime_value: Sum of line amounts
        avg_purchase_value: lifetime_value / total_purchases
        first_purchase_at, last_purchase_at: Purchase date range
        preferred_brands: Up to 5 brands, most purchased first
        preferred_sizes: Up to 5 sizes, most purchased first
        preferred_categories: Up to 5 categories, most purchased first
        updated_at: When the profile was last rebuilt
    """

    __tablename__ = "customer_profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    customer_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
    )
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    total_purchases: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifetime_value: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        default=Decimal("0"),
    )
    avg_purchase_value: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=True,
    )
    first_purchase_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
    )
    last_purchase_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
        index=True,
    )
    preferred_brands: Mapped[list | None] = mapped_column(JSON, nullable=True)
    preferred_sizes: Mapped[list | None] = mapped_column(JSON, nullable=True)
    preferred_categories: Mapped[list | None] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    @property
    def full_name(self) -> str:
        """First and last name joined, skipping blanks."""
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def __repr__(self) -> str:
        return (
            f"<CustomerProfile(customer_id={self.customer_id!r}, "
            f"total_purchases={self.total_purchases!r})>"
        )
