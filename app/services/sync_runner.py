"""
Sync run aggregator: one full warehouse → Shopify inventory sync.

This is the unit of work both the hourly scheduler and the manual trigger call. It fetches the
canonical inventory, reconciles every item in warehouse order, isolates unexpected per-item
failures, and folds all outcomes into a SyncRunSummary.
"""
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, List, Optional

from app.services.errors import SyncAlreadyRunningError, WarehouseAPIError, public_error_message
from app.services.inventory_types import ItemError, SyncOutcome, SyncRunResult, SyncRunSummary
from app.services.warehouse_api import validate_inventory_data

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_PARTIAL = "partial"
STATUS_FAILED = "failed"

EMPTY_WAREHOUSE_MESSAGE = "No inventory data from warehouse"


class SyncGuard:
    """In-flight flag that keeps two runs for the same shop from interleaving mutations."""

    def __init__(self, name: str = "default"):
        self.name = name
        self.running = False
        self.started_at: Optional[datetime] = None

    @contextmanager
    def hold(self):
        if self.running:
            raise SyncAlreadyRunningError(
                f"Inventory sync for {self.name} already running since {self.started_at.isoformat() if self.started_at else 'unknown'}"
            )
        self.running = True
        self.started_at = datetime.now(timezone.utc)
        try:
            yield self
        finally:
            self.running = False
            self.started_at = None


_guards: Dict[str, SyncGuard] = {}


def get_sync_guard(shop: str) -> SyncGuard:
    """Process-wide guard per shop, shared by the scheduler and the manual trigger."""
    guard = _guards.get(shop)
    if guard is None:
        guard = SyncGuard(shop)
        _guards[shop] = guard
    return guard


def derive_status(success_count: int, error_count: int, warehouse_empty: bool = False) -> str:
    if warehouse_empty:
        return STATUS_PARTIAL
    if error_count > 0 and success_count == 0:
        return STATUS_FAILED
    if error_count > 0:
        return STATUS_PARTIAL
    return STATUS_SUCCESS


def build_summary(
    total_items: int,
    results: List[SyncOutcome],
    errors: List[ItemError],
    started_at: datetime,
    completed_at: datetime,
    duration: float,
    warehouse_empty: bool = False,
) -> SyncRunSummary:
    success_count = sum(1 for r in results if r.success and not r.skipped)
    skipped_count = sum(1 for r in results if r.skipped)
    return SyncRunSummary(
        total_items=total_items,
        success_count=success_count,
        failed_count=len(errors),
        skipped_count=skipped_count,
        total_location_ops=len(results),
        duration=duration,
        started_at=started_at,
        completed_at=completed_at,
        status=derive_status(success_count, len(errors), warehouse_empty),
    )


class InventorySyncRunner:
    """Drives the reconciler across the full warehouse catalog for one shop."""

    def __init__(self, warehouse, reconciler, *, shop: str = "default", sync_logger=None, guard: Optional[SyncGuard] = None):
        self.warehouse = warehouse
        self.reconciler = reconciler
        self.shop = shop
        self.sync_logger = sync_logger
        self.guard = guard or get_sync_guard(shop)

    async def run_sync(self) -> SyncRunResult:
        """
        Run one sync. Raises SyncAlreadyRunningError if a run for this shop is in flight,
        ConfigurationError / WarehouseAPIError on fatal fetch problems; everything else is
        reported inside the returned SyncRunResult.
        """
        with self.guard.hold():
            log_id = self._create_log()
            try:
                result = await self._run()
            except Exception as e:
                logger.error("[Inventory Sync] %s: fatal error: %s", self.shop, e)
                self._fail_log(log_id, e)
                raise
            result.log_id = log_id
            self._complete_log(log_id, result)
            return result

    async def _run(self) -> SyncRunResult:
        started_at = datetime.now(timezone.utc)
        t0 = time.monotonic()
        logger.info("[Inventory Sync] %s: starting at %s", self.shop, started_at.isoformat())

        inventory = await self.warehouse.fetch_canonical_inventory()
        if not inventory:
            logger.warning("[Inventory Sync] %s: %s", self.shop, EMPTY_WAREHOUSE_MESSAGE)
            summary = build_summary(
                0, [], [], started_at, datetime.now(timezone.utc), time.monotonic() - t0, warehouse_empty=True,
            )
            return SyncRunResult(summary=summary, message=EMPTY_WAREHOUSE_MESSAGE)
        if not validate_inventory_data(inventory):
            raise WarehouseAPIError("Invalid inventory data from warehouse API")
        logger.info("[Inventory Sync] %s: fetched %s item(s) from warehouse", self.shop, len(inventory))

        results: List[SyncOutcome] = []
        errors: List[ItemError] = []
        for item in inventory:
            try:
                results.extend(await self.reconciler.reconcile_item(item))
            except Exception as e:
                logger.exception("[Inventory Sync] %s: error syncing SKU %s: %s", self.shop, item.sku, e)
                errors.append(ItemError(sku=item.sku, error=public_error_message(e)))

        summary = build_summary(
            len(inventory), results, errors, started_at, datetime.now(timezone.utc), time.monotonic() - t0,
        )
        message = None
        if summary.status == STATUS_FAILED:
            message = "All items failed to update"
        elif summary.status == STATUS_PARTIAL:
            message = f"{len(errors)} item(s) failed to sync"
        logger.info(
            "[Inventory Sync] %s: completed status=%s total=%s updated=%s skipped=%s failed=%s duration=%.2fs",
            self.shop, summary.status, summary.total_items, summary.success_count,
            summary.skipped_count, summary.failed_count, summary.duration,
        )
        return SyncRunResult(summary=summary, results=results, errors=errors, message=message)

    def _create_log(self) -> Optional[int]:
        if self.sync_logger is None:
            return None
        return self.sync_logger.create_run(self.shop)

    def _complete_log(self, log_id: Optional[int], result: SyncRunResult) -> None:
        if self.sync_logger is None or log_id is None:
            return
        try:
            self.sync_logger.complete_run(log_id, result)
        except Exception as e:
            logger.exception("[Inventory Sync] %s: could not finalize sync log #%s: %s", self.shop, log_id, e)

    def _fail_log(self, log_id: Optional[int], error: Exception) -> None:
        if self.sync_logger is None or log_id is None:
            return
        try:
            self.sync_logger.fail_run(log_id, error)
        except Exception as e:
            logger.exception("[Inventory Sync] %s: could not mark sync log #%s failed: %s", self.shop, log_id, e)
