"""ProcessingStatus model for the receiving workflow."""

import uuid
from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from boutiqueflow.database import Base


class EntityType(str, Enum):
    """Kinds of entity an operator can mark as processed."""

    ITEM = "item"
    GRID = "grid"


class ProcessingState(str, Enum):
    """Workflow states for a received item or product group."""

    NEW = "new"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class ProcessingStatus(Base):
    """Last-write-wins processing state for an item or product grid.

    Attributes:
        id: Unique identifier (UUID)
        entity_type: 'item' or 'grid'
        entity_id: Heartland item ID or grid ID
        receipt_id: Receiving document the entity was processed from
        status: 'new', 'completed' or 'skipped'
        processed_at: When the status was last set
        processed_by: Who set the status
    """

    __tablename__ = "processing_statuses"
    __table_args__ = (
        UniqueConstraint(
            "entity_type",
            "entity_id",
            name="uq_processing_statuses_entity",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    entity_type: Mapped[str] = mapped_column(String(10), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    receipt_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ProcessingState.NEW.value,
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=True,
    )
    processed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ProcessingStatus(entity_type={self.entity_type!r}, "
            f"entity_id={self.entity_id!r}, status={self.status!r})>"
        )
