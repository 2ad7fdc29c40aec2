"""FastAPI routes for the BoutiqueFlow back office."""

from boutiqueflow.api.analysis import router as analysis_router
from boutiqueflow.api.customers import router as customers_router
from boutiqueflow.api.descriptions import router as descriptions_router
from boutiqueflow.api.items import router as items_router
from boutiqueflow.api.receipts import router as receipts_router
from boutiqueflow.api.sync import router as sync_router

__all__ = [
    "analysis_router",
    "customers_router",
    "descriptions_router",
    "items_router",
    "receipts_router",
    "sync_router",
]
