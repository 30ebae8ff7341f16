"""
Shopify Admin GraphQL client tests against a faked transport
"""
import asyncio
import json

import httpx
import pytest

from app.services.errors import ShopifyAPIError, ShopifyUserError
from app.services.http_client import RetryPolicy
from app.services.inventory_types import ShopLocation
from app.services import shopify_inventory
from app.services.shopify_inventory import ShopifyAdminClient, ShopifyInventoryService

NO_WAIT = RetryPolicy(name="test", max_retries=2, initial_delay=0)


def run_with_service(handler, coro_factory, mutation_delay=0):
    """Build a service on a MockTransport and run coro_factory(service)."""
    async def go():
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        admin = ShopifyAdminClient("test-shop", "shpat_test", api_version="2024-10", retry_policy=NO_WAIT, client=http)
        try:
            return await coro_factory(ShopifyInventoryService(admin, mutation_delay=mutation_delay))
        finally:
            await http.aclose()
    return asyncio.run(go())


def graphql_handler(responses, seen=None):
    """responses: operation name → data dict (or callable(variables) → data)."""
    def handler(request: httpx.Request):
        assert request.url.host == "test-shop.myshopify.com"
        assert request.url.path == "/admin/api/2024-10/graphql.json"
        assert request.headers["X-Shopify-Access-Token"] == "shpat_test"
        body = json.loads(request.content)
        name = next(n for n in responses if n in body["query"])
        if seen is not None:
            seen.append((name, body["variables"]))
        data = responses[name]
        if callable(data):
            data = data(body["variables"])
        return httpx.Response(200, json={"data": data})
    return handler


class TestVariantLookup:

    def test_exact_sku_match_wins(self):
        seen = []
        handler = graphql_handler({
            "findVariantBySku": {"productVariants": {"edges": [
                {"node": {"id": "gid://shopify/ProductVariant/1", "sku": "ABC-10", "inventoryItem": {"id": "gid://shopify/InventoryItem/1"}}},
                {"node": {"id": "gid://shopify/ProductVariant/2", "sku": "ABC-1", "inventoryItem": {"id": "gid://shopify/InventoryItem/2"}}},
            ]}},
        }, seen)

        variant = run_with_service(handler, lambda s: s.find_variant_by_sku("ABC-1"))

        assert variant.variant_id == "gid://shopify/ProductVariant/2"
        assert variant.inventory_item_id == "gid://shopify/InventoryItem/2"
        assert seen == [("findVariantBySku", {"query": 'sku:"ABC-1"', "first": 50, "after": None})]

    def test_unknown_sku_returns_none(self):
        handler = graphql_handler({"findVariantBySku": {"productVariants": {"edges": []}}})
        assert run_with_service(handler, lambda s: s.find_variant_by_sku("NOPE")) is None

    def test_exact_match_on_a_later_page_is_found(self):
        seen = []

        def variants(variables):
            if variables["after"] is None:
                return {"productVariants": {
                    "pageInfo": {"hasNextPage": True, "endCursor": "c1"},
                    "edges": [{"node": {"id": "gid://shopify/ProductVariant/1", "sku": "ABC-10",
                                        "inventoryItem": {"id": "gid://shopify/InventoryItem/1"}}}],
                }}
            assert variables["after"] == "c1"
            return {"productVariants": {
                "pageInfo": {"hasNextPage": False, "endCursor": None},
                "edges": [{"node": {"id": "gid://shopify/ProductVariant/2", "sku": "ABC-1",
                                    "inventoryItem": {"id": "gid://shopify/InventoryItem/2"}}}],
            }}

        variant = run_with_service(
            graphql_handler({"findVariantBySku": variants}, seen), lambda s: s.find_variant_by_sku("ABC-1"),
        )

        assert variant.inventory_item_id == "gid://shopify/InventoryItem/2"
        assert [v["after"] for _, v in seen] == [None, "c1"]

    def test_lookup_stops_after_page_limit(self):
        seen = []
        page = {"productVariants": {
            "pageInfo": {"hasNextPage": True, "endCursor": "more"},
            "edges": [{"node": {"id": "gid://shopify/ProductVariant/1", "sku": "ABC-10",
                                "inventoryItem": {"id": "gid://shopify/InventoryItem/1"}}}],
        }}

        variant = run_with_service(
            graphql_handler({"findVariantBySku": page}, seen), lambda s: s.find_variant_by_sku("ABC-1"),
        )

        assert variant is None
        assert len(seen) == shopify_inventory.MAX_VARIANT_PAGES


class TestInventoryReads:

    def test_levels_follow_cursor_pagination(self):
        def levels(variables):
            if variables["after"] is None:
                return {"inventoryItem": {"id": "i", "inventoryLevels": {
                    "pageInfo": {"hasNextPage": True, "endCursor": "c1"},
                    "edges": [{"node": {"id": "l1", "quantities": [{"name": "available", "quantity": 90}],
                                        "location": {"id": "gid://shopify/Location/1", "name": "Narita - JP"}}}],
                }}}
            assert variables["after"] == "c1"
            return {"inventoryItem": {"id": "i", "inventoryLevels": {
                "pageInfo": {"hasNextPage": False, "endCursor": None},
                "edges": [{"node": {"id": "l2", "quantities": [],
                                    "location": {"id": "gid://shopify/Location/3", "name": "Osaka"}}}],
            }}}

        result = run_with_service(graphql_handler({"inventoryLevels": levels}), lambda s: s.get_inventory_levels("i"))

        assert [(l.location_name, l.available_quantity) for l in result] == [("Narita - JP", 90), ("Osaka", 0)]

    def test_missing_inventory_item_is_an_error(self):
        handler = graphql_handler({"inventoryLevels": {"inventoryItem": None}})
        with pytest.raises(ShopifyAPIError):
            run_with_service(handler, lambda s: s.get_inventory_levels("gone"))

    def test_list_shop_locations(self):
        handler = graphql_handler({"shopLocations": {"locations": {
            "pageInfo": {"hasNextPage": False},
            "edges": [
                {"node": {"id": "gid://shopify/Location/1", "name": "Narita - JP"}},
                {"node": {"id": "gid://shopify/Location/2", "name": "Ba Đình - HN"}},
            ],
        }}})
        locations = run_with_service(handler, lambda s: s.list_shop_locations())
        assert locations == [
            ShopLocation(id="gid://shopify/Location/1", name="Narita - JP"),
            ShopLocation(id="gid://shopify/Location/2", name="Ba Đình - HN"),
        ]


class TestInventoryMutations:

    def test_adjust_sends_signed_delta_with_correction_reason(self):
        seen = []
        handler = graphql_handler({"inventoryAdjustQuantities": {"inventoryAdjustQuantities": {
            "inventoryAdjustmentGroup": {"reason": "correction", "changes": [{"name": "available", "delta": -30}]},
            "userErrors": [],
        }}}, seen)

        run_with_service(handler, lambda s: s.adjust_available_quantity("gid://shopify/InventoryItem/1", "gid://shopify/Location/1", -30))

        _, variables = seen[0]
        assert variables["input"] == {
            "reason": "correction",
            "name": "available",
            "changes": [{
                "inventoryItemId": "gid://shopify/InventoryItem/1",
                "locationId": "gid://shopify/Location/1",
                "delta": -30,
            }],
        }

    def test_user_errors_raise(self):
        handler = graphql_handler({"inventoryAdjustQuantities": {"inventoryAdjustQuantities": {
            "inventoryAdjustmentGroup": None,
            "userErrors": [{"field": ["input", "changes"], "message": "Item is not stocked at location"}],
        }}})
        with pytest.raises(ShopifyUserError) as exc_info:
            run_with_service(handler, lambda s: s.adjust_available_quantity("i", "l", 5))
        assert "not stocked" in str(exc_info.value)
        assert exc_info.value.field == ["input", "changes"]

    def test_activate_returns_new_level(self):
        handler = graphql_handler({"inventoryActivate": {"inventoryActivate": {
            "inventoryLevel": {"id": "l", "quantities": [{"name": "available", "quantity": 0}],
                               "location": {"id": "gid://shopify/Location/2", "name": "Ba Đình - HN"}},
            "userErrors": [],
        }}})
        location = ShopLocation(id="gid://shopify/Location/2", name="Ba Đình - HN")
        level = run_with_service(handler, lambda s: s.activate_inventory("i", location))
        assert level.location_id == location.id
        assert level.available_quantity == 0

    def test_mutations_are_spaced_by_mutation_delay(self, monkeypatch):
        events = []
        real_handler = graphql_handler({
            "findVariantBySku": {"productVariants": {"edges": [
                {"node": {"id": "gid://shopify/ProductVariant/1", "sku": "A", "inventoryItem": {"id": "i"}}},
            ]}},
            "inventoryActivate": {"inventoryActivate": {"inventoryLevel": None, "userErrors": []}},
            "inventoryAdjustQuantities": {"inventoryAdjustQuantities": {
                "inventoryAdjustmentGroup": None, "userErrors": [],
            }},
        }, events)

        async def fake_sleep(delay, *args, **kwargs):
            events.append(("sleep", delay))

        monkeypatch.setattr(shopify_inventory.asyncio, "sleep", fake_sleep)
        location = ShopLocation(id="gid://shopify/Location/2", name="Ba Đình - HN")

        async def reads_then_mutations(service):
            await service.find_variant_by_sku("A")
            await service.activate_inventory("i", location)
            await service.adjust_available_quantity("i", location.id, 8)

        run_with_service(real_handler, reads_then_mutations, mutation_delay=0.5)

        names = [name for name, _ in events]
        assert names == ["findVariantBySku", "inventoryActivate", "sleep", "inventoryAdjustQuantities"]
        delay = events[2][1]
        assert 0.4 < delay <= 0.5


class TestErrors:

    def test_throttled_graphql_error_is_retried(self):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            if calls["n"] == 1:
                return httpx.Response(200, json={"errors": [{"message": "Throttled", "extensions": {"code": "THROTTLED"}}]})
            return httpx.Response(200, json={"data": {"productVariants": {"edges": []}}})

        assert run_with_service(handler, lambda s: s.find_variant_by_sku("X")) is None
        assert calls["n"] == 2

    def test_other_graphql_errors_raise(self):
        def handler(request):
            return httpx.Response(200, json={"errors": [{"message": "Field 'foo' doesn't exist"}]})

        with pytest.raises(ShopifyAPIError, match="doesn't exist"):
            run_with_service(handler, lambda s: s.find_variant_by_sku("X"))

    def test_http_error_status_raises_with_code(self):
        def handler(request):
            return httpx.Response(401, json={"errors": "Invalid API key or access token"})

        with pytest.raises(ShopifyAPIError) as exc_info:
            run_with_service(handler, lambda s: s.list_shop_locations())
        assert exc_info.value.status_code == 401
