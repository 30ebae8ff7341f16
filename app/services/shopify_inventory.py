"""
Shopify Admin GraphQL access for inventory reconciliation.

ShopifyAdminClient is the per-shop transport (access token, API version, retries).
ShopifyInventoryService reads variants, inventory levels and locations, and issues the two
inventory mutations the sync needs: activate tracking at a location, and adjust by a delta.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from app.config import settings
from app.services.errors import ShopifyAPIError, ShopifyUserError
from app.services.http_client import SHOPIFY_RETRY_POLICY, RetryPolicy, request_with_retry
from app.services.inventory_types import CommerceInventoryLevel, CommerceVariantRef, ShopLocation

logger = logging.getLogger(__name__)

PAGE_SIZE = 50
# Search matches are fuzzy; stop paging after this many pages without an exact SKU hit
MAX_VARIANT_PAGES = 10

FIND_VARIANT_BY_SKU = """
query findVariantBySku($query: String!, $first: Int!, $after: String) {
  productVariants(first: $first, after: $after, query: $query) {
    pageInfo {
      hasNextPage
      endCursor
    }
    edges {
      node {
        id
        sku
        inventoryItem {
          id
        }
      }
    }
  }
}
"""

INVENTORY_LEVELS = """
query inventoryLevels($inventoryItemId: ID!, $first: Int!, $after: String) {
  inventoryItem(id: $inventoryItemId) {
    id
    inventoryLevels(first: $first, after: $after) {
      pageInfo {
        hasNextPage
        endCursor
      }
      edges {
        node {
          id
          quantities(names: ["available"]) {
            name
            quantity
          }
          location {
            id
            name
          }
        }
      }
    }
  }
}
"""

SHOP_LOCATIONS = """
query shopLocations($first: Int!, $after: String) {
  locations(first: $first, after: $after) {
    pageInfo {
      hasNextPage
      endCursor
    }
    edges {
      node {
        id
        name
      }
    }
  }
}
"""

INVENTORY_ACTIVATE = """
mutation inventoryActivate($inventoryItemId: ID!, $locationId: ID!) {
  inventoryActivate(inventoryItemId: $inventoryItemId, locationId: $locationId) {
    inventoryLevel {
      id
      quantities(names: ["available"]) {
        name
        quantity
      }
      location {
        id
        name
      }
    }
    userErrors {
      field
      message
    }
  }
}
"""

INVENTORY_ADJUST_QUANTITIES = """
mutation inventoryAdjustQuantities($input: InventoryAdjustQuantitiesInput!) {
  inventoryAdjustQuantities(input: $input) {
    inventoryAdjustmentGroup {
      reason
      changes {
        name
        delta
      }
    }
    userErrors {
      field
      message
    }
  }
}
"""


def _base_url(shop_domain: str, api_version: str) -> str:
    shop = shop_domain.lower().strip()
    shop = shop.replace("https://", "").replace("http://", "").rstrip("/")
    if not shop.endswith(".myshopify.com"):
        shop = f"{shop}.myshopify.com" if "." not in shop else shop
    return f"https://{shop}/admin/api/{api_version}"


def _is_throttled(errors: list) -> bool:
    for err in errors or []:
        if isinstance(err, dict) and (err.get("extensions") or {}).get("code") == "THROTTLED":
            return True
    return False


def _first_error_message(errors: list) -> str:
    for err in errors or []:
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
    return "Unknown GraphQL error"


def _raise_user_errors(payload: Optional[dict]) -> None:
    user_errors = (payload or {}).get("userErrors") or []
    if user_errors:
        first = user_errors[0] or {}
        raise ShopifyUserError(str(first.get("message") or "Unknown user error"), field=first.get("field"))


def _available_from_level(node: dict) -> int:
    for q in node.get("quantities") or []:
        if q and q.get("name") == "available":
            return int(q.get("quantity") or 0)
    return 0


def _level_from_node(node: dict) -> CommerceInventoryLevel:
    location = node.get("location") or {}
    return CommerceInventoryLevel(
        location_id=str(location.get("id") or ""),
        location_name=str(location.get("name") or ""),
        available_quantity=_available_from_level(node),
    )


class ShopifyAdminClient:
    """Authenticated GraphQL client for one shop."""

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        *,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_policy: RetryPolicy = SHOPIFY_RETRY_POLICY,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.shop_domain = shop_domain
        self.url = f"{_base_url(shop_domain, api_version or settings.SHOPIFY_API_VERSION)}/graphql.json"
        self.headers = {
            "X-Shopify-Access-Token": access_token,
            "Content-Type": "application/json",
        }
        self.timeout = timeout or settings.HTTP_TIMEOUT_SEC
        self.retry_policy = retry_policy
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.timeout)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ShopifyAdminClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Run one GraphQL operation and return its `data`.
        HTTP 429/5xx and timeouts are retried by the transport; a THROTTLED cost error
        (returned with HTTP 200) is retried here under the same policy.
        """
        body = {"query": query, "variables": variables or {}}
        for attempt in range(self.retry_policy.max_retries + 1):
            try:
                resp = await request_with_retry(
                    "POST", self.url,
                    policy=self.retry_policy,
                    client=self._client,
                    timeout=self.timeout,
                    json=body,
                    headers=self.headers,
                )
            except httpx.HTTPError as e:
                raise ShopifyAPIError(f"Shopify request failed: {e}") from e
            if resp.status_code >= 400:
                logger.warning("Shopify GraphQL %s -> %s %s", self.shop_domain, resp.status_code, resp.text[:200])
                raise ShopifyAPIError(f"Shopify API returned {resp.status_code}", status_code=resp.status_code)
            try:
                payload = resp.json()
            except ValueError as e:
                raise ShopifyAPIError("Shopify API returned invalid JSON", status_code=resp.status_code) from e

            errors = payload.get("errors")
            if errors:
                if _is_throttled(errors) and attempt < self.retry_policy.max_retries:
                    delay = self.retry_policy.delay_for(attempt + 1)
                    logger.warning("Shopify GraphQL throttled for %s, retrying in %.1fs", self.shop_domain, delay)
                    await asyncio.sleep(delay)
                    continue
                raise ShopifyAPIError(_first_error_message(errors if isinstance(errors, list) else [errors]))
            return payload.get("data") or {}
        raise ShopifyAPIError("Shopify API throttled; retries exhausted", status_code=429)


class ShopifyInventoryService:
    """
    Inventory reads and mutations used by the reconciler.
    Successive mutations are spaced at least `mutation_delay` seconds apart.
    """

    def __init__(self, admin: ShopifyAdminClient, mutation_delay: Optional[float] = None):
        self.admin = admin
        self.mutation_delay = settings.SHOPIFY_MUTATION_DELAY_SEC if mutation_delay is None else mutation_delay
        self._last_mutation_at: Optional[float] = None

    async def _pace_mutation(self) -> None:
        if self.mutation_delay <= 0:
            return
        loop = asyncio.get_running_loop()
        if self._last_mutation_at is not None:
            wait = self.mutation_delay - (loop.time() - self._last_mutation_at)
            if wait > 0:
                await asyncio.sleep(wait)
        self._last_mutation_at = loop.time()

    async def find_variant_by_sku(self, sku: str) -> Optional[CommerceVariantRef]:
        """Exact SKU match; first match wins. None means the SKU is not sold on this shop."""
        escaped = sku.replace("\\", "\\\\").replace('"', '\\"')
        after = None
        for _ in range(MAX_VARIANT_PAGES):
            data = await self.admin.graphql(
                FIND_VARIANT_BY_SKU,
                {"query": f'sku:"{escaped}"', "first": PAGE_SIZE, "after": after},
            )
            connection = data.get("productVariants") or {}
            for edge in connection.get("edges") or []:
                node = (edge or {}).get("node") or {}
                if (node.get("sku") or "").strip() != sku:
                    continue
                inventory_item = node.get("inventoryItem") or {}
                if not inventory_item.get("id"):
                    continue
                return CommerceVariantRef(
                    variant_id=str(node.get("id")),
                    inventory_item_id=str(inventory_item["id"]),
                    sku=sku,
                )
            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage") or not page_info.get("endCursor"):
                return None
            after = page_info["endCursor"]
        logger.warning("No exact match for SKU %s within %s page(s) of search results", sku, MAX_VARIANT_PAGES)
        return None

    async def get_inventory_levels(self, inventory_item_id: str) -> List[CommerceInventoryLevel]:
        """Every location the inventory item is already tracked (activated) at."""
        levels: List[CommerceInventoryLevel] = []
        after = None
        while True:
            data = await self.admin.graphql(
                INVENTORY_LEVELS,
                {"inventoryItemId": inventory_item_id, "first": PAGE_SIZE, "after": after},
            )
            item = data.get("inventoryItem")
            if item is None:
                raise ShopifyAPIError(f"Inventory item {inventory_item_id} not found")
            connection = item.get("inventoryLevels") or {}
            for edge in connection.get("edges") or []:
                node = (edge or {}).get("node")
                if node:
                    levels.append(_level_from_node(node))
            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage") or not page_info.get("endCursor"):
                break
            after = page_info["endCursor"]
        return levels

    async def list_shop_locations(self) -> List[ShopLocation]:
        locations: List[ShopLocation] = []
        after = None
        while True:
            data = await self.admin.graphql(SHOP_LOCATIONS, {"first": PAGE_SIZE, "after": after})
            connection = data.get("locations") or {}
            for edge in connection.get("edges") or []:
                node = (edge or {}).get("node") or {}
                if node.get("id"):
                    locations.append(ShopLocation(id=str(node["id"]), name=str(node.get("name") or "")))
            page_info = connection.get("pageInfo") or {}
            if not page_info.get("hasNextPage") or not page_info.get("endCursor"):
                break
            after = page_info["endCursor"]
        return locations

    async def activate_inventory(self, inventory_item_id: str, location: ShopLocation) -> CommerceInventoryLevel:
        """Start tracking the item at `location`. Raises ShopifyUserError when Shopify refuses."""
        await self._pace_mutation()
        data = await self.admin.graphql(
            INVENTORY_ACTIVATE,
            {"inventoryItemId": inventory_item_id, "locationId": location.id},
        )
        payload = data.get("inventoryActivate") or {}
        _raise_user_errors(payload)
        node = payload.get("inventoryLevel")
        if not node:
            return CommerceInventoryLevel(location_id=location.id, location_name=location.name, available_quantity=0)
        level = _level_from_node(node)
        return CommerceInventoryLevel(
            location_id=level.location_id or location.id,
            location_name=level.location_name or location.name,
            available_quantity=level.available_quantity,
        )

    async def adjust_available_quantity(self, inventory_item_id: str, location_id: str, delta: int) -> None:
        """Relative change of the `available` quantity, composing with concurrent adjustments."""
        await self._pace_mutation()
        data = await self.admin.graphql(
            INVENTORY_ADJUST_QUANTITIES,
            {
                "input": {
                    "reason": "correction",
                    "name": "available",
                    "changes": [
                        {"inventoryItemId": inventory_item_id, "locationId": location_id, "delta": delta},
                    ],
                }
            },
        )
        _raise_user_errors(data.get("inventoryAdjustQuantities"))
