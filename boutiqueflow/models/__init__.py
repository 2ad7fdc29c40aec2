"""SQLAlchemy models for the BoutiqueFlow back office."""

from boutiqueflow.models.analysis_cache import AnalysisCache
from boutiqueflow.models.customer_profile import CustomerProfile
from boutiqueflow.models.processing_status import ProcessingStatus
from boutiqueflow.models.receive_event import ReceiveEvent
from boutiqueflow.models.sale_event import SaleEvent
from boutiqueflow.models.sync_log import SyncLog

__all__ = [
    "AnalysisCache",
    "CustomerProfile",
    "ProcessingStatus",
    "ReceiveEvent",
    "SaleEvent",
    "SyncLog",
]
