"""
Shared fixtures: in-memory database, fake Shopify inventory, fake warehouse
"""
import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SHOPIFY_API_KEY"] = "test-api-key"
os.environ["SHOPIFY_API_SECRET"] = "test-api-secret"
os.environ["SHOPIFY_MUTATION_DELAY_SEC"] = "0"
os.environ["WAREHOUSE_LOCATIONS"] = "7:Narita - JP,9:Ba Đình - HN"
os.environ["USE_MOCK_WAREHOUSE"] = "false"
os.environ["WAREHOUSE_API_URL"] = ""
os.environ["ENV"] = "DEV"

from dataclasses import replace
from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.models import ShopifySession
from app.services.errors import ShopifyAPIError, ShopifyUserError, WarehouseAPIError
from app.services.inventory_types import (
    CanonicalInventoryItem,
    CommerceInventoryLevel,
    CommerceVariantRef,
    LocationQuantity,
    ShopLocation,
)

NARITA = ShopLocation(id="gid://shopify/Location/1", name="Narita - JP")
BA_DINH = ShopLocation(id="gid://shopify/Location/2", name="Ba Đình - HN")


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def offline_session(db_session):
    session = ShopifySession(
        shop="test-shop.myshopify.com",
        access_token="shpat_test",
        scope="read_inventory,write_inventory",
        is_online=False,
    )
    db_session.add(session)
    db_session.commit()
    return session


def make_item(sku: str, *locations, name: str = "Test Product") -> CanonicalInventoryItem:
    return CanonicalInventoryItem(
        sku=sku,
        product_name=name,
        locations=tuple(LocationQuantity(location_name=n, quantity=q) for n, q in locations),
    )


class FakeShopifyInventory:
    """In-memory stand-in for ShopifyInventoryService that applies mutations to its own state."""

    def __init__(self, locations: Optional[List[ShopLocation]] = None):
        self.locations = list(locations if locations is not None else [NARITA, BA_DINH])
        self.variants: Dict[str, CommerceVariantRef] = {}
        self.levels: Dict[str, List[CommerceInventoryLevel]] = {}
        self.activations: List[tuple] = []
        self.adjustments: List[tuple] = []
        self.fail_activation: Dict[str, str] = {}
        self.fail_adjust: Dict[str, str] = {}
        self.explode_on_sku: Dict[str, Exception] = {}

    def add_variant(self, sku: str, levels: Optional[Dict[ShopLocation, int]] = None) -> CommerceVariantRef:
        n = len(self.variants) + 1
        variant = CommerceVariantRef(
            variant_id=f"gid://shopify/ProductVariant/{n}",
            inventory_item_id=f"gid://shopify/InventoryItem/{n}",
            sku=sku,
        )
        self.variants[sku] = variant
        self.levels[variant.inventory_item_id] = [
            CommerceInventoryLevel(location_id=loc.id, location_name=loc.name, available_quantity=qty)
            for loc, qty in (levels or {}).items()
        ]
        return variant

    def available(self, sku: str, location: ShopLocation) -> Optional[int]:
        item_id = self.variants[sku].inventory_item_id
        for level in self.levels[item_id]:
            if level.location_id == location.id:
                return level.available_quantity
        return None

    @property
    def mutation_count(self) -> int:
        return len(self.activations) + len(self.adjustments)

    async def find_variant_by_sku(self, sku):
        if sku in self.explode_on_sku:
            raise self.explode_on_sku[sku]
        return self.variants.get(sku)

    async def get_inventory_levels(self, inventory_item_id):
        return list(self.levels.get(inventory_item_id, []))

    async def list_shop_locations(self):
        return list(self.locations)

    async def activate_inventory(self, inventory_item_id, location):
        if location.id in self.fail_activation:
            raise ShopifyUserError(self.fail_activation[location.id])
        self.activations.append((inventory_item_id, location.id))
        level = CommerceInventoryLevel(location_id=location.id, location_name=location.name, available_quantity=0)
        self.levels.setdefault(inventory_item_id, []).append(level)
        return level

    async def adjust_available_quantity(self, inventory_item_id, location_id, delta):
        if location_id in self.fail_adjust:
            raise ShopifyAPIError(self.fail_adjust[location_id])
        self.adjustments.append((inventory_item_id, location_id, delta))
        levels = self.levels[inventory_item_id]
        for i, level in enumerate(levels):
            if level.location_id == location_id:
                levels[i] = replace(level, available_quantity=level.available_quantity + delta)


class FakeWarehouse:
    def __init__(self, items=None, error: Optional[Exception] = None):
        self.items = items or []
        self.error = error
        self.calls = 0

    async def fetch_canonical_inventory(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.items)


@pytest.fixture
def shopify():
    return FakeShopifyInventory()


@pytest.fixture
def failing_warehouse():
    return FakeWarehouse(error=WarehouseAPIError("Warehouse API returned 500", status_code=500))
