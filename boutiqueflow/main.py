"""FastAPI application entry point."""

import logging
from typing import Any

from fastapi import FastAPI

from boutiqueflow.api import (
    analysis_router,
    customers_router,
    descriptions_router,
    items_router,
    receipts_router,
    sync_router,
)
from boutiqueflow.config import settings
from boutiqueflow.services.heartland import HeartlandAPIError, HeartlandClient

logger = logging.getLogger(__name__)

app = FastAPI(
    title="BoutiqueFlow",
    description="Back office for receiving, inventory aging and customer outreach",
    version="0.1.0",
    debug=settings.debug,
)

# Include API routers
app.include_router(analysis_router)
app.include_router(customers_router)
app.include_router(descriptions_router)
app.include_router(items_router)
app.include_router(receipts_router)
app.include_router(sync_router)


@app.get("/health")
async def health_check() -> dict[str, Any]:
    """Health check reporting Heartland connectivity and LLM configuration."""
    heartland: dict[str, Any] = {"connected": False}
    try:
        async with HeartlandClient() as client:
            whoami = await client.whoami()
        heartland = {"connected": True, "account": whoami.get("name") or whoami.get("id")}
    except HeartlandAPIError as e:
        logger.warning("Heartland health check failed: %s", e)
        heartland["error"] = str(e)

    return {
        "status": "ok" if heartland["connected"] else "degraded",
        "heartland": heartland,
        "llm": {
            "configured": bool(settings.ollama_base_url and settings.ollama_model),
            "model": settings.ollama_model,
        },
    }
