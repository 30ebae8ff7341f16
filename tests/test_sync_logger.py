"""
Sync log persistence and statistics tests
"""
import json
from datetime import datetime, timedelta, timezone

from app.models import InventorySyncLog, SyncRunStatus
from app.services.inventory_types import ItemError, SyncOutcome, SyncRunResult, SyncRunSummary
from app.services.sync_logger import (
    MAX_LOGGED_RESULTS,
    SyncRunLogger,
    get_recent_sync_logs,
    get_sync_stats,
    serialize_sync_log,
)

SHOP = "test-shop.myshopify.com"


def make_result(status="success", outcomes=1, errors=0):
    now = datetime.now(timezone.utc)
    results = [
        SyncOutcome(sku=f"SKU-{i}", location="Narita - JP", success=True, skipped=False, message="ok",
                    previous_quantity=0, new_quantity=1, delta=1)
        for i in range(outcomes)
    ]
    return SyncRunResult(
        summary=SyncRunSummary(
            total_items=outcomes + errors,
            success_count=outcomes,
            failed_count=errors,
            skipped_count=0,
            total_location_ops=outcomes,
            duration=1.5,
            started_at=now,
            completed_at=now,
            status=status,
        ),
        results=results,
        errors=[ItemError(sku=f"BAD-{i}", error="boom") for i in range(errors)],
        message=None if status == "success" else f"{errors} item(s) failed to sync",
    )


def add_log(db_session, status, minutes_ago, shop=SHOP):
    log = InventorySyncLog(
        shop=shop,
        status=status,
        started_at=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
    )
    db_session.add(log)
    db_session.commit()
    return log


class TestSyncRunLogger:

    def test_create_then_complete(self, db_session):
        logger = SyncRunLogger(db_session)
        log_id = logger.create_run(SHOP)

        log = db_session.get(InventorySyncLog, log_id)
        assert log.status == SyncRunStatus.RUNNING
        assert log.completed_at is None

        logger.complete_run(log_id, make_result("partial", outcomes=2, errors=1))

        db_session.refresh(log)
        assert log.status == SyncRunStatus.PARTIAL
        assert log.total_items == 3
        assert log.success_count == 2
        assert log.failed_count == 1
        assert log.duration_ms == 1500
        assert log.error_message == "1 item(s) failed to sync"
        summary = json.loads(log.result_summary)
        assert summary["errors"] == [{"sku": "BAD-0", "error": "boom"}]
        assert len(summary["results"]) == 2

    def test_result_summary_is_capped(self, db_session):
        logger = SyncRunLogger(db_session)
        log_id = logger.create_run(SHOP)

        logger.complete_run(log_id, make_result(outcomes=MAX_LOGGED_RESULTS + 5))

        summary = json.loads(db_session.get(InventorySyncLog, log_id).result_summary)
        assert len(summary["results"]) == MAX_LOGGED_RESULTS
        assert summary["truncated"] is True

    def test_fail_run(self, db_session):
        logger = SyncRunLogger(db_session)
        log_id = logger.create_run(SHOP)

        logger.fail_run(log_id, RuntimeError("Warehouse API returned 500"))

        log = db_session.get(InventorySyncLog, log_id)
        assert log.status == SyncRunStatus.FAILED
        assert log.error_message == "Warehouse API returned 500"
        assert log.completed_at is not None
        assert log.duration_ms is not None

    def test_unknown_log_id_is_ignored(self, db_session):
        SyncRunLogger(db_session).complete_run(999, make_result())
        assert db_session.query(InventorySyncLog).count() == 0


class TestHistory:

    def test_recent_logs_newest_first_and_scoped_to_shop(self, db_session):
        oldest = add_log(db_session, SyncRunStatus.SUCCESS, 120)
        newest = add_log(db_session, SyncRunStatus.FAILED, 5)
        add_log(db_session, SyncRunStatus.SUCCESS, 1, shop="other.myshopify.com")

        logs = get_recent_sync_logs(db_session, SHOP, limit=10)

        assert [l.id for l in logs] == [newest.id, oldest.id]
        assert len(get_recent_sync_logs(db_session, SHOP, limit=1)) == 1

    def test_stats(self, db_session):
        add_log(db_session, SyncRunStatus.SUCCESS, 180)
        add_log(db_session, SyncRunStatus.SUCCESS, 120)
        add_log(db_session, SyncRunStatus.PARTIAL, 60)
        latest = add_log(db_session, SyncRunStatus.FAILED, 1)

        stats = get_sync_stats(db_session, SHOP)

        assert stats["totalSyncs"] == 4
        assert stats["successfulSyncs"] == 2
        assert stats["partialSyncs"] == 1
        assert stats["failedSyncs"] == 1
        assert stats["successRate"] == 50.0
        assert stats["lastSync"]["id"] == latest.id
        assert stats["lastSync"]["status"] == "failed"

    def test_stats_without_runs(self, db_session):
        stats = get_sync_stats(db_session, SHOP)
        assert stats["totalSyncs"] == 0
        assert stats["successRate"] == 0.0
        assert stats["lastSync"] is None

    def test_serialize_with_results(self, db_session):
        logger = SyncRunLogger(db_session)
        log_id = logger.create_run(SHOP)
        logger.complete_run(log_id, make_result())

        data = serialize_sync_log(db_session.get(InventorySyncLog, log_id), include_results=True)

        assert data["status"] == "success"
        assert data["successCount"] == 1
        assert data["resultSummary"]["results"][0]["sku"] == "SKU-0"
