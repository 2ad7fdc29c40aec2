"""AnalysisCache model holding precomputed analysis snapshots."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import String
from sqlalchemy.dialects.postgresql import JSON, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from boutiqueflow.database import Base

INVENTORY_ANALYSIS_KEY = "inventory_analysis"
SALES_ANALYSIS_KEY = "sales_analysis"
RECEIPTS_KEY = "receipts"


class AnalysisCache(Base):
    """A single current snapshot per cache key.

    The payload is replaced wholesale on every successful computation.

    Attributes:
        id: Unique identifier (UUID)
        cache_key: Snapshot name (e.g. 'inventory_analysis')
        payload: Snapshot body, validated before it is written
        synced_at: When the snapshot was computed
    """

    __tablename__ = "analysis_cache"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    cache_key: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
    )
    payload: Mapped[dict | list] = mapped_column(JSON, nullable=False)
    synced_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<AnalysisCache(cache_key={self.cache_key!r}, synced_at={self.synced_at!r})>"
