"""SyncLog model: audit trail of background sync runs."""

import uuid
from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from boutiqueflow.database import Base


class SyncStatus(str, Enum):
    """Lifecycle states of a sync run."""

    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class SyncLog(Base):
    """One row per sync run, written at start and updated at completion.

    Attributes:
        id: Unique run identifier (UUID)
        sync_type: Kind of run (e.g. 'full', 'inventory_analysis')
        status: running / success / partial / failed
        started_at: When the run started
        completed_at: When the run finished (None while running)
        records_synced: Total rows written by the run
        error_message: Error summary for failed or partial runs
    """

    __tablename__ = "sync_logs"
    __table_args__ = (
        Index("idx_sync_logs_type_started", "sync_type", "started_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    sync_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SyncStatus.RUNNING.value,
    )
    started_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
    )
    records_synced: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<SyncLog(sync_type={self.sync_type!r}, status={self.status!r}, "
            f"records_synced={self.records_synced!r})>"
        )
