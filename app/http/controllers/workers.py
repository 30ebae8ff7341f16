"""
Background worker status routes
"""
import logging
from fastapi import APIRouter, Depends

from app.auth import ShopContext, get_current_shop
from app.workers.scheduler import get_workers_status

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def list_workers(current_shop: ShopContext = Depends(get_current_shop)):
    """Scheduler state and per-worker last/next run."""
    return get_workers_status()
