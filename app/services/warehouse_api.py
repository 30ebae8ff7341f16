"""
Warehouse inventory client.

Pages GET /inventories?page=&limit=&warehouse_id= for every configured warehouse location,
then merges the per-location records into one canonical item per SKU.
Fetching is all-or-nothing: any page that still fails after retries aborts the whole fetch.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx

from app.config import settings
from app.services.errors import ConfigurationError, WarehouseAPIError
from app.services.http_client import WAREHOUSE_RETRY_POLICY, RetryPolicy, request_with_retry
from app.services.inventory_types import CanonicalInventoryItem, LocationQuantity

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 100
# Upper bound on pages per warehouse in case the server never reports the last page
MAX_PAGES = 1000
UNKNOWN_PRODUCT_NAME = "Unknown Product"


def _parse_quantity(value: Any) -> int:
    """sale_inventory_quantity → non-negative int. Missing or unparseable counts as 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        qty = int(float(value))
    except (TypeError, ValueError):
        logger.warning("Warehouse: unparseable quantity %r, using 0", value)
        return 0
    return max(qty, 0)


def merge_warehouse_records(
    records_by_location: Iterable[Tuple[str, List[dict]]],
) -> List[CanonicalInventoryItem]:
    """
    Merge raw warehouse records into canonical items keyed by SKU.
    records_by_location: (location_name, raw records) in configured order.
    The first occurrence of a SKU creates the item (and supplies its name); later occurrences
    at another location append a LocationQuantity. A repeated record for the same SKU and
    location replaces the earlier quantity, so each location appears once per item.
    Records without product or SKU are dropped.
    """
    merged: Dict[str, Dict[str, Any]] = {}
    for location_name, records in records_by_location:
        for record in records or []:
            product = record.get("product") if isinstance(record, dict) else None
            if not isinstance(product, dict):
                logger.warning("Warehouse: skipping record without product at %s: %r", location_name, record)
                continue
            sku = str(product.get("sku") or "").strip()
            if not sku:
                logger.warning("Warehouse: skipping record with empty SKU at %s", location_name)
                continue
            entry = merged.get(sku)
            if entry is None:
                entry = {
                    "product_name": (str(product.get("name") or "").strip() or UNKNOWN_PRODUCT_NAME),
                    "locations": {},
                }
                merged[sku] = entry
            if location_name in entry["locations"]:
                logger.warning("Warehouse: duplicate record for SKU %s at %s, keeping the last one", sku, location_name)
            entry["locations"][location_name] = LocationQuantity(
                location_name=location_name,
                quantity=_parse_quantity(record.get("sale_inventory_quantity")),
            )
    return [
        CanonicalInventoryItem(sku=sku, product_name=entry["product_name"], locations=tuple(entry["locations"].values()))
        for sku, entry in merged.items()
    ]


def validate_inventory_data(inventory: Any) -> bool:
    """Structural check of a canonical inventory list before reconciliation."""
    if not isinstance(inventory, list):
        return False
    for item in inventory:
        if not isinstance(item, CanonicalInventoryItem):
            return False
        if not isinstance(item.sku, str) or not item.sku:
            return False
        if not item.locations:
            return False
        for loc in item.locations:
            if not isinstance(loc.location_name, str) or not loc.location_name:
                return False
            if not isinstance(loc.quantity, int) or isinstance(loc.quantity, bool) or loc.quantity < 0:
                return False
    return True


class BaseWarehouseClient:
    """Capability shared by the real and the mock warehouse clients."""

    locations: Dict[int, str]

    async def fetch_canonical_inventory(self) -> List[CanonicalInventoryItem]:
        raise NotImplementedError


class WarehouseInventoryClient(BaseWarehouseClient):
    """Reads stock from the warehouse REST API."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str],
        locations: Dict[int, str],
        *,
        page_limit: int = DEFAULT_PAGE_LIMIT,
        timeout: float = 30.0,
        retry_policy: RetryPolicy = WAREHOUSE_RETRY_POLICY,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not (base_url or "").strip():
            raise ConfigurationError("WAREHOUSE_API_URL not configured")
        if not locations:
            raise ConfigurationError("WAREHOUSE_LOCATIONS not configured")
        self.base_url = base_url.strip().rstrip("/")
        self.token = (token or "").strip()
        self.locations = dict(locations)
        self.page_limit = page_limit
        self.timeout = timeout
        self.retry_policy = retry_policy
        self._client = client

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def fetch_canonical_inventory(self) -> List[CanonicalInventoryItem]:
        logger.info("Warehouse: fetching inventory for %s location(s)", len(self.locations))
        client = self._client or httpx.AsyncClient(timeout=self.timeout)
        try:
            records_by_location = []
            for warehouse_id, location_name in self.locations.items():
                records = await self.fetch_warehouse_records(client, warehouse_id)
                records_by_location.append((location_name, records))
        finally:
            if self._client is None:
                await client.aclose()
        inventory = merge_warehouse_records(records_by_location)
        logger.info(
            "Warehouse: fetched inventory for %s product(s) across %s location(s)",
            len(inventory), len(self.locations),
        )
        return inventory

    async def fetch_warehouse_records(self, client: httpx.AsyncClient, warehouse_id: int) -> List[dict]:
        """All raw records of one warehouse, following current_page/last_page."""
        url = f"{self.base_url}/inventories"
        records: List[dict] = []
        page = 1
        while True:
            if page > MAX_PAGES:
                raise WarehouseAPIError(f"Warehouse {warehouse_id}: pagination did not terminate after {MAX_PAGES} pages")
            params = {"page": page, "limit": self.page_limit, "warehouse_id": warehouse_id}
            try:
                resp = await request_with_retry(
                    "GET", url,
                    policy=self.retry_policy,
                    client=client,
                    timeout=self.timeout,
                    params=params,
                    headers=self._headers(),
                )
            except httpx.HTTPError as e:
                raise WarehouseAPIError(f"Warehouse {warehouse_id} page {page} request failed: {e}") from e
            if resp.status_code >= 400:
                raise WarehouseAPIError(
                    f"Warehouse API returned {resp.status_code} for warehouse {warehouse_id} page {page}",
                    status_code=resp.status_code,
                )
            try:
                data = resp.json()
            except ValueError as e:
                raise WarehouseAPIError(f"Warehouse {warehouse_id} page {page}: invalid JSON") from e
            if not isinstance(data, dict):
                raise WarehouseAPIError(f"Warehouse {warehouse_id} page {page}: unexpected response shape")

            items = data.get("data")
            if isinstance(items, list):
                records.extend(items)
            current_page = int(data.get("current_page") or page)
            last_page = int(data.get("last_page") or 1)
            logger.info(
                "Warehouse: fetched page %s/%s for warehouse %s (%s items)",
                current_page, last_page, warehouse_id, len(items) if isinstance(items, list) else 0,
            )
            if current_page >= last_page:
                break
            page = current_page + 1
        return records


# Fixture stock used when USE_MOCK_WAREHOUSE is on. Same raw shape as the real API.
MOCK_WAREHOUSE_RECORDS: Dict[int, List[dict]] = {
    7: [
        {"product": {"sku": "4511413305478", "name": "Kokuyo Campus Notebook B5"}, "sale_inventory_quantity": 100, "warehouse_id": 7},
        {"product": {"sku": "4901234567894", "name": "Pilot FriXion Ball 0.5"}, "sale_inventory_quantity": 42, "warehouse_id": 7},
        {"product": {"sku": "4902505442858", "name": "Zebra Sarasa Clip 0.4"}, "sale_inventory_quantity": 0, "warehouse_id": 7},
    ],
    9: [
        {"product": {"sku": "4511413305478", "name": "Kokuyo Campus Notebook B5"}, "sale_inventory_quantity": 80, "warehouse_id": 9},
        {"product": {"sku": "4902505442858", "name": "Zebra Sarasa Clip 0.4"}, "sale_inventory_quantity": 15, "warehouse_id": 9},
    ],
}


class MockWarehouseInventoryClient(BaseWarehouseClient):
    """Serves fixture records through the same merge as the real client."""

    def __init__(self, locations: Dict[int, str], records: Optional[Dict[int, List[dict]]] = None):
        self.locations = dict(locations)
        self.records = MOCK_WAREHOUSE_RECORDS if records is None else records

    async def fetch_canonical_inventory(self) -> List[CanonicalInventoryItem]:
        logger.info("Warehouse (mock): serving fixture inventory")
        return merge_warehouse_records(
            (name, list(self.records.get(wid, []))) for wid, name in self.locations.items()
        )


def get_warehouse_client(config=None) -> BaseWarehouseClient:
    """Pick the warehouse implementation once, at composition time."""
    config = config or settings
    if config.USE_MOCK_WAREHOUSE:
        return MockWarehouseInventoryClient(config.WAREHOUSE_LOCATIONS)
    return WarehouseInventoryClient(
        config.WAREHOUSE_API_URL,
        config.WAREHOUSE_API_TOKEN,
        config.WAREHOUSE_LOCATIONS,
        page_limit=config.WAREHOUSE_PAGE_LIMIT,
        timeout=config.HTTP_TIMEOUT_SEC,
    )
