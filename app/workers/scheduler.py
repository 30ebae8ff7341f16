"""
Worker Scheduler Configuration

Registers and schedules background workers. Currently the hourly warehouse → Shopify
inventory sync.
"""

import logging
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from app.config import settings
from app.workers.inventory_sync_worker import run_scheduled_inventory_sync

logger = logging.getLogger(__name__)

WorkerFunc = Callable[[], Awaitable[Dict[str, Any]]]


class WorkerScheduler:
    """Scheduler for running background workers at specified intervals."""

    def __init__(self, tick_seconds: float = 60):
        self.workers: Dict[str, Dict[str, Any]] = {}
        self.tick_seconds = tick_seconds
        self.started_at: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None
        self._worker_tasks: Set[asyncio.Task] = set()

    def register(
        self,
        name: str,
        func: WorkerFunc,
        interval: int,
        first_delay: int = 0,
        enabled: bool = True,
    ) -> None:
        self.workers[name] = {
            "func": func,
            "interval": interval,
            "first_delay": first_delay,
            "last_run": None,
            "last_result": None,
            "in_progress": False,
            "enabled": enabled,
        }

    async def run_worker(self, worker_name: str, worker_config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run a single worker and log results.

        Args:
            worker_name: Name of the worker
            worker_config: Worker configuration

        Returns:
            Worker result
        """
        worker_config["in_progress"] = True
        try:
            logger.info("Starting worker: %s", worker_name)
            result = await worker_config["func"]()
            if result.get("success", False):
                logger.info("Worker %s completed: %s", worker_name, result.get("message", "No message"))
            else:
                logger.error("Worker %s failed: %s", worker_name, result.get("message", "Unknown error"))
        except Exception as e:
            logger.exception("Worker %s crashed: %s", worker_name, e)
            result = {
                "success": False,
                "message": f"Worker crashed: {str(e)}",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        finally:
            worker_config["in_progress"] = False
            worker_config["last_run"] = datetime.now(timezone.utc)
        worker_config["last_result"] = result
        return result

    def is_due(self, worker_config: Dict[str, Any], now: datetime) -> bool:
        if not worker_config["enabled"] or worker_config["in_progress"]:
            return False
        last_run = worker_config["last_run"]
        if last_run is None:
            started_at = self.started_at or now
            return (now - started_at).total_seconds() >= worker_config["first_delay"]
        return (now - last_run).total_seconds() >= worker_config["interval"]

    async def _loop(self) -> None:
        logger.info("🚀 Worker scheduler started")
        while True:
            now = datetime.now(timezone.utc)
            for worker_name, worker_config in self.workers.items():
                if self.is_due(worker_config, now):
                    # Run worker asynchronously; keep a reference until it finishes
                    task = asyncio.create_task(self.run_worker(worker_name, worker_config))
                    self._worker_tasks.add(task)
                    task.add_done_callback(self._worker_tasks.discard)
            await asyncio.sleep(self.tick_seconds)

    def start(self) -> bool:
        """Start the loop on the running event loop. Returns False if it was already running."""
        if self.is_running():
            logger.debug("Worker scheduler already running")
            return False
        self.started_at = datetime.now(timezone.utc)
        self._task = asyncio.get_running_loop().create_task(self._loop())
        return True

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.info("⏹️ Worker scheduler stopped")
        self._task = None
        for task in list(self._worker_tasks):
            task.cancel()
        self._worker_tasks.clear()

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def get_status(self) -> Dict[str, Any]:
        """Get current status of all workers."""
        status = {}
        for worker_name, worker_config in self.workers.items():
            last_run = worker_config["last_run"]
            next_run = None
            if last_run:
                next_run = last_run + timedelta(seconds=worker_config["interval"])
            elif self.started_at:
                next_run = self.started_at + timedelta(seconds=worker_config["first_delay"])

            last_result = worker_config["last_result"] or {}
            status[worker_name] = {
                "enabled": worker_config["enabled"],
                "lastRun": last_run.isoformat() if last_run else None,
                "nextRun": next_run.isoformat() if next_run and self.is_running() else None,
                "intervalSeconds": worker_config["interval"],
                "inProgress": worker_config["in_progress"],
                "lastMessage": last_result.get("message"),
                "status": "running" if self.is_running() else "stopped",
            }
        return status


def build_scheduler(config=None) -> WorkerScheduler:
    config = config or settings
    scheduler = WorkerScheduler()
    if config.ENABLE_INVENTORY_SYNC:
        scheduler.register(
            "inventory_sync",
            run_scheduled_inventory_sync,
            interval=config.INVENTORY_SYNC_INTERVAL_SEC,
            first_delay=config.INVENTORY_SYNC_FIRST_DELAY_SEC,
        )
    else:
        logger.info("Inventory sync scheduler disabled (ENABLE_INVENTORY_SYNC=false)")
    return scheduler


# Global scheduler instance
scheduler = build_scheduler()


def start_background_workers() -> None:
    """Start the background worker scheduler (idempotent)."""
    if scheduler.start():
        logger.info("✅ Background workers started: %s", ", ".join(scheduler.workers) or "none")


def stop_background_workers() -> None:
    scheduler.stop()


def get_workers_status() -> Dict[str, Any]:
    return {"running": scheduler.is_running(), "workers": scheduler.get_status()}
