"""
Inventory sync run log: one InventorySyncLog row per run, created as running and finalized once.
Also the read side used by the dashboard endpoints (recent runs, aggregate stats).
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models import InventorySyncLog, SyncRunStatus
from app.services.inventory_types import SyncRunResult

logger = logging.getLogger(__name__)

MAX_LOGGED_RESULTS = 100
MAX_ERROR_LENGTH = 1000


class SyncRunLogger:
    """Persists run lifecycle for one database session."""

    def __init__(self, db: Session):
        self.db = db

    def create_run(self, shop: str) -> int:
        log = InventorySyncLog(
            shop=shop,
            started_at=datetime.now(timezone.utc),
            status=SyncRunStatus.RUNNING,
        )
        self.db.add(log)
        self.db.commit()
        self.db.refresh(log)
        logger.info("Created inventory sync log #%s for %s", log.id, shop)
        return log.id

    def complete_run(self, log_id: int, result: SyncRunResult) -> None:
        log = self.db.query(InventorySyncLog).filter(InventorySyncLog.id == log_id).first()
        if not log:
            logger.warning("Inventory sync log #%s not found", log_id)
            return
        summary = result.summary
        log.completed_at = summary.completed_at
        log.status = SyncRunStatus(summary.status)
        log.total_items = summary.total_items
        log.success_count = summary.success_count
        log.failed_count = summary.failed_count
        log.skipped_count = summary.skipped_count
        log.duration_ms = summary.duration_ms
        log.error_message = result.message if summary.status != SyncRunStatus.SUCCESS.value else None
        log.result_summary = json.dumps(
            {
                "results": [r.to_dict() for r in result.results[:MAX_LOGGED_RESULTS]],
                "errors": [e.to_dict() for e in result.errors],
                "truncated": len(result.results) > MAX_LOGGED_RESULTS,
            },
            ensure_ascii=False,
        )
        self.db.commit()
        logger.info("Inventory sync log #%s completed: %s", log_id, summary.status)

    def fail_run(self, log_id: int, error: Exception) -> None:
        log = self.db.query(InventorySyncLog).filter(InventorySyncLog.id == log_id).first()
        if not log:
            logger.warning("Inventory sync log #%s not found", log_id)
            return
        completed_at = datetime.now(timezone.utc)
        log.completed_at = completed_at
        log.status = SyncRunStatus.FAILED
        log.error_message = (str(error) or error.__class__.__name__)[:MAX_ERROR_LENGTH]
        if log.started_at:
            started_at = log.started_at
            if started_at.tzinfo is None:
                started_at = started_at.replace(tzinfo=timezone.utc)
            log.duration_ms = int((completed_at - started_at).total_seconds() * 1000)
        self.db.commit()
        logger.info("Inventory sync log #%s failed: %s", log_id, log.error_message)


def serialize_sync_log(log: InventorySyncLog, include_results: bool = False) -> Dict[str, Any]:
    data = {
        "id": log.id,
        "shop": log.shop,
        "status": getattr(log.status, "value", str(log.status)) if log.status else None,
        "startedAt": log.started_at.isoformat() if log.started_at else None,
        "completedAt": log.completed_at.isoformat() if log.completed_at else None,
        "totalItems": log.total_items or 0,
        "successCount": log.success_count or 0,
        "failedCount": log.failed_count or 0,
        "skippedCount": log.skipped_count or 0,
        "durationMs": log.duration_ms,
        "errorMessage": log.error_message,
    }
    if include_results:
        try:
            data["resultSummary"] = json.loads(log.result_summary) if log.result_summary else None
        except ValueError:
            data["resultSummary"] = None
    return data


def get_recent_sync_logs(db: Session, shop: str, limit: int = 10) -> List[InventorySyncLog]:
    """Newest first."""
    return (
        db.query(InventorySyncLog)
        .filter(InventorySyncLog.shop == shop)
        .order_by(InventorySyncLog.started_at.desc(), InventorySyncLog.id.desc())
        .limit(limit)
        .all()
    )


def get_sync_stats(db: Session, shop: str) -> Dict[str, Any]:
    """Run counts per status, success rate (percent, finished runs only) and the latest run."""
    rows = (
        db.query(InventorySyncLog.status, func.count(InventorySyncLog.id))
        .filter(InventorySyncLog.shop == shop)
        .group_by(InventorySyncLog.status)
        .all()
    )
    counts = {status.value: 0 for status in SyncRunStatus}
    for status, count in rows:
        counts[getattr(status, "value", str(status))] = count
    total = sum(counts.values())
    finished = total - counts[SyncRunStatus.RUNNING.value]
    success_rate = round(counts[SyncRunStatus.SUCCESS.value] / finished * 100, 2) if finished else 0.0

    latest: Optional[InventorySyncLog] = (
        db.query(InventorySyncLog)
        .filter(InventorySyncLog.shop == shop)
        .order_by(InventorySyncLog.started_at.desc(), InventorySyncLog.id.desc())
        .first()
    )
    return {
        "totalSyncs": total,
        "successfulSyncs": counts[SyncRunStatus.SUCCESS.value],
        "partialSyncs": counts[SyncRunStatus.PARTIAL.value],
        "failedSyncs": counts[SyncRunStatus.FAILED.value],
        "runningSyncs": counts[SyncRunStatus.RUNNING.value],
        "successRate": success_rate,
        "lastSync": serialize_sync_log(latest) if latest else None,
    }
