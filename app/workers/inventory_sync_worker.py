"""
Inventory Sync Worker

Runs the warehouse → Shopify inventory sync. The manual trigger endpoint, the CLI script and
the hourly scheduler all go through run_inventory_sync_for_shop, so every run is guarded
against overlap and logged the same way.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from app.database import SessionLocal
from app.models import ShopifySession
from app.services.errors import ConfigurationError, SyncAlreadyRunningError
from app.services.inventory_sync import InventoryReconciler
from app.services.inventory_types import SyncRunResult
from app.services.shopify_inventory import ShopifyAdminClient, ShopifyInventoryService
from app.services.sync_logger import SyncRunLogger
from app.services.sync_runner import InventorySyncRunner
from app.services.warehouse_api import BaseWarehouseClient, get_warehouse_client

logger = logging.getLogger(__name__)


def get_offline_session(db: Session, shop: str) -> Optional[ShopifySession]:
    """Most recently updated offline session for a shop."""
    return (
        db.query(ShopifySession)
        .filter(ShopifySession.shop == shop, ShopifySession.is_online.is_(False))
        .order_by(ShopifySession.updated_at.desc())
        .first()
    )


def list_offline_sessions(db: Session) -> List[ShopifySession]:
    """One offline session per installed shop (latest wins)."""
    sessions = (
        db.query(ShopifySession)
        .filter(ShopifySession.is_online.is_(False))
        .order_by(ShopifySession.shop, ShopifySession.updated_at.desc())
        .all()
    )
    seen = set()
    unique = []
    for s in sessions:
        if s.shop in seen or not s.access_token:
            continue
        seen.add(s.shop)
        unique.append(s)
    return unique


async def run_inventory_sync_for_shop(
    db: Session,
    shop: str,
    access_token: str,
    *,
    warehouse: Optional[BaseWarehouseClient] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    mutation_delay: Optional[float] = None,
) -> SyncRunResult:
    """
    Run one full inventory sync for `shop`.

    Raises SyncAlreadyRunningError, ConfigurationError or WarehouseAPIError; every other
    failure is reported inside the returned result.
    """
    sync_logger = SyncRunLogger(db)
    if warehouse is None:
        try:
            warehouse = get_warehouse_client()
        except ConfigurationError as e:
            logger.error("[Inventory Sync] %s: warehouse not configured: %s", shop, e)
            sync_logger.fail_run(sync_logger.create_run(shop), e)
            raise

    async with ShopifyAdminClient(shop, access_token, client=http_client) as admin:
        inventory = ShopifyInventoryService(admin, mutation_delay=mutation_delay)
        runner = InventorySyncRunner(
            warehouse,
            InventoryReconciler(inventory),
            shop=shop,
            sync_logger=sync_logger,
        )
        return await runner.run_sync()


async def run_scheduled_inventory_sync(
    session_factory: Callable[[], Session] = SessionLocal,
    sync_func=run_inventory_sync_for_shop,
) -> Dict[str, Any]:
    """
    One scheduler tick: sync every shop that has an offline session.
    A failure for one shop is logged and never stops the others.
    """
    db = session_factory()
    shops: List[Dict[str, Any]] = []
    try:
        sessions = list_offline_sessions(db)
        if not sessions:
            logger.info("[Inventory Sync] No offline Shopify sessions; nothing to sync")
            return {
                "success": True,
                "message": "No shops to sync",
                "shops": [],
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }

        for session in sessions:
            try:
                result = await sync_func(db, session.shop, session.access_token)
                shops.append({"shop": session.shop, "status": result.summary.status, "logId": result.log_id})
            except SyncAlreadyRunningError as e:
                logger.info("[Inventory Sync] %s: skipped, %s", session.shop, e)
                shops.append({"shop": session.shop, "status": "skipped", "error": str(e)})
            except Exception as e:
                logger.exception("[Inventory Sync] %s: scheduled sync failed: %s", session.shop, e)
                shops.append({"shop": session.shop, "status": "failed", "error": str(e)})
    finally:
        db.close()

    failed = [s for s in shops if s["status"] == "failed"]
    return {
        "success": not failed,
        "message": f"Synced {len(shops) - len(failed)}/{len(shops)} shop(s)",
        "shops": shops,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
