#!/usr/bin/env python3
"""
Trigger Inventory Sync - Run one warehouse → Shopify inventory sync from the command line
"""
import sys
import os
import json
import asyncio
import logging
import argparse

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.database import SessionLocal, engine, Base
from app.services.errors import InventorySyncError
from app.workers.inventory_sync_worker import (
    get_offline_session,
    list_offline_sessions,
    run_inventory_sync_for_shop,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


async def sync_shops(shop=None, show_results=False):
    """Sync one shop, or every shop with an offline session. Returns the number of failed shops."""
    db = SessionLocal()
    failed = 0
    try:
        if shop:
            session = get_offline_session(db, shop)
            if session is None:
                logger.error("No offline Shopify session for %s", shop)
                return 1
            sessions = [session]
        else:
            sessions = list_offline_sessions(db)
            logger.info("Found %s shop(s) with offline sessions", len(sessions))

        for session in sessions:
            try:
                result = await run_inventory_sync_for_shop(db, session.shop, session.access_token)
            except InventorySyncError as e:
                logger.error("Sync failed for %s: %s", session.shop, e)
                failed += 1
                continue
            output = {"shop": session.shop, "summary": result.summary.to_dict(), "message": result.message}
            if show_results:
                output["results"] = [r.to_dict() for r in result.results]
                output["errors"] = [e.to_dict() for e in result.errors]
            print(json.dumps(output, indent=2, ensure_ascii=False))
            if result.summary.status == "failed":
                failed += 1
    finally:
        db.close()
    return failed


def main():
    parser = argparse.ArgumentParser(description="Run one inventory sync from the warehouse to Shopify")
    parser.add_argument("--shop", help="Shop domain (default: every shop with an offline session)")
    parser.add_argument("--results", action="store_true", help="Print per-location outcomes")
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine)
    failed = asyncio.run(sync_shops(args.shop, args.results))
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
