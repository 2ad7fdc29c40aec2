"""Business logic services for the BoutiqueFlow back office."""

from boutiqueflow.services.aging import (
    build_inventory_analysis,
    classify_age,
    refresh_inventory_analysis,
)
from boutiqueflow.services.heartland import (
    HeartlandAPIError,
    HeartlandAuthError,
    HeartlandClient,
)
from boutiqueflow.services.ingestion import (
    IngestionContext,
    IngestionResult,
    ingest_receiving_window,
    ingest_sales_window,
    rebuild_customer_profiles,
)
from boutiqueflow.services.sales_patterns import build_sales_analysis, refresh_sales_analysis
from boutiqueflow.services.snapshots import get_snapshot, save_snapshot

__all__ = [
    "HeartlandAPIError",
    "HeartlandAuthError",
    "HeartlandClient",
    "IngestionContext",
    "IngestionResult",
    "build_inventory_analysis",
    "build_sales_analysis",
    "classify_age",
    "get_snapshot",
    "ingest_receiving_window",
    "ingest_sales_window",
    "rebuild_customer_profiles",
    "refresh_inventory_analysis",
    "refresh_sales_analysis",
    "save_snapshot",
]
