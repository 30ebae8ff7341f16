"""
Inventory sync routes: manual trigger, run history and statistics
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.auth import ShopContext, get_current_shop
from app.database import get_db
from app.http.requests.schemas import SyncLogsResponse, SyncStatsResponse
from app.services.errors import ConfigurationError, SyncAlreadyRunningError, WarehouseAPIError
from app.services.sync_logger import get_recent_sync_logs, get_sync_stats, serialize_sync_log
from app.workers.inventory_sync_worker import run_inventory_sync_for_shop

logger = logging.getLogger(__name__)
router = APIRouter()

MAX_RESPONSE_RESULTS = 500


def get_sync_executor():
    """The unit of work behind POST; overridable in tests."""
    return run_inventory_sync_for_shop


@router.post("")
async def trigger_inventory_sync(
    db: Session = Depends(get_db),
    current_shop: ShopContext = Depends(get_current_shop),
    execute_sync=Depends(get_sync_executor),
):
    """Run one warehouse → Shopify inventory sync for the current shop and return its summary."""
    logger.info("[API Sync] Starting inventory sync for shop: %s", current_shop.shop)
    try:
        result = await execute_sync(db, current_shop.shop, current_shop.access_token)
    except SyncAlreadyRunningError:
        raise HTTPException(status_code=409, detail="An inventory sync is already running for this shop")
    except ConfigurationError as e:
        logger.error("[API Sync] %s: configuration error: %s", current_shop.shop, e)
        raise HTTPException(status_code=500, detail="Inventory sync is not configured")
    except WarehouseAPIError as e:
        logger.error("[API Sync] %s: warehouse error: %s", current_shop.shop, e)
        raise HTTPException(status_code=502, detail="Inventory sync failed: warehouse API unavailable")

    summary = result.summary
    payload = result.to_dict(max_results=MAX_RESPONSE_RESULTS)
    payload.update({
        "shop": current_shop.shop,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        # Flat counters kept for older admin UI builds
        "status": summary.status,
        "totalItems": summary.total_items,
        "updatedItems": summary.success_count,
        "failedItems": summary.failed_count,
        "skippedItems": summary.skipped_count,
    })
    return payload


@router.get("")
async def describe_inventory_sync():
    """Endpoint description"""
    return {
        "endpoint": "/api/sync-inventory",
        "method": "POST",
        "description": "Sync inventory quantities from the warehouse API to Shopify locations",
        "authentication": "Requires a Shopify session token (Authorization: Bearer <token>)",
        "usage": {
            "manual": "Call from the admin UI sync button",
            "scheduled": "Runs automatically every INVENTORY_SYNC_INTERVAL_SEC seconds for every installed shop",
        },
        "related": {
            "logs": "/api/sync-inventory/logs?limit=10",
            "stats": "/api/sync-inventory/stats",
        },
    }


@router.get("/logs", response_model=SyncLogsResponse)
async def list_inventory_sync_logs(
    limit: int = Query(10, ge=1, le=100),
    include_results: bool = Query(False, alias="includeResults"),
    db: Session = Depends(get_db),
    current_shop: ShopContext = Depends(get_current_shop),
):
    """Recent sync runs for the current shop, newest first"""
    logs = get_recent_sync_logs(db, current_shop.shop, limit)
    return {
        "shop": current_shop.shop,
        "logs": [serialize_sync_log(log, include_results=include_results) for log in logs],
    }


@router.get("/stats", response_model=SyncStatsResponse)
async def inventory_sync_stats(
    db: Session = Depends(get_db),
    current_shop: ShopContext = Depends(get_current_shop),
):
    stats = get_sync_stats(db, current_shop.shop)
    stats["shop"] = current_shop.shop
    return stats
