"""
Central API route registration. All HTTP controllers are mounted here with /api prefix.
"""
import logging
from fastapi import FastAPI

from app.http.controllers import (
    inventory_sync,
    workers,
)

logger = logging.getLogger(__name__)


def register_routes(app: FastAPI, settings) -> None:
    """Register all API routers. Call from main.py after creating the FastAPI app."""
    prefix = settings.API_PREFIX
    app.include_router(inventory_sync.router, prefix=f"{prefix}/sync-inventory", tags=["inventory-sync"])
    app.include_router(workers.router, prefix=f"{prefix}/workers", tags=["workers"])
    logger.debug("Registered API routes under %s", prefix)
