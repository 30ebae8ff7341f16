"""
Reconciliation engine: converge Shopify per-location stock to the warehouse's counts for one SKU.

For each canonical item the variant, its current inventory levels and the shop's locations are
read once; then every warehouse location is resolved (activating tracking when needed) and
adjusted by the signed delta between target and current quantity. Levels are tracked as they
are mutated, so a location listed twice is compared against what the first entry left behind.
Unchanged stock never triggers a mutation, so running the sync again with no upstream change
is a no-op.
"""
import logging
from dataclasses import replace
from typing import Dict, List

from app.services.errors import LocationActivationError, ShopifyAPIError, public_error_message
from app.services.inventory_types import (
    CanonicalInventoryItem,
    CommerceInventoryLevel,
    LocationQuantity,
    SyncOutcome,
)
from app.services.location_resolver import resolve_location

logger = logging.getLogger(__name__)


class InventoryReconciler:
    """Reconciles one canonical item at a time against a shop's inventory."""

    def __init__(self, inventory):
        # ShopifyInventoryService or anything with the same async methods
        self.inventory = inventory

    async def reconcile_item(self, item: CanonicalInventoryItem) -> List[SyncOutcome]:
        """
        One outcome per entry in item.locations, in order; or a single "all" outcome when the
        SKU is not sold on the shop or the shop has no locations at all.
        Shopify errors while reading the variant/levels/locations propagate to the caller;
        errors while activating or adjusting one location are recorded on that location only.
        """
        sku = item.sku
        variant = await self.inventory.find_variant_by_sku(sku)
        if variant is None:
            logger.warning("No Shopify variant found for SKU %s", sku)
            return [
                SyncOutcome(
                    sku=sku,
                    location="all",
                    success=False,
                    skipped=True,
                    message=f"Product variant with SKU {sku} not found in Shopify",
                )
            ]

        existing_levels = await self.inventory.get_inventory_levels(variant.inventory_item_id)
        shop_locations = await self.inventory.list_shop_locations()
        if not existing_levels and not shop_locations:
            return [
                SyncOutcome(
                    sku=sku,
                    location="all",
                    success=False,
                    skipped=True,
                    message=f"No locations found in shop for SKU {sku}",
                )
            ]

        # location_id → level as it stands after this item's mutations so far
        levels: Dict[str, CommerceInventoryLevel] = {level.location_id: level for level in existing_levels}
        outcomes = []
        for target in item.locations:
            outcome = await self._reconcile_location(
                sku, variant.inventory_item_id, target, levels, shop_locations,
            )
            outcomes.append(outcome)
        return outcomes

    async def _reconcile_location(
        self,
        sku: str,
        inventory_item_id: str,
        target: LocationQuantity,
        levels: Dict[str, CommerceInventoryLevel],
        shop_locations,
    ) -> SyncOutcome:
        try:
            resolved = await resolve_location(
                self.inventory, inventory_item_id, target.location_name, list(levels.values()), shop_locations,
            )
        except LocationActivationError as e:
            logger.error("Activation failed for SKU %s at %s: %s", sku, target.location_name, e)
            error = public_error_message(e)
            return SyncOutcome(
                sku=sku,
                location=target.location_name,
                success=False,
                skipped=False,
                error=error,
                message=f"Failed to activate inventory for SKU {sku} at {target.location_name}: {error}",
            )

        if resolved is None:
            logger.warning("Location %r does not exist in Shopify (SKU %s)", target.location_name, sku)
            return SyncOutcome(
                sku=sku,
                location=target.location_name,
                success=False,
                skipped=True,
                message=(
                    f'Location "{target.location_name}" does not exist in Shopify. '
                    f"Create it under Settings > Locations."
                ),
            )

        level = resolved.level
        if resolved.was_activated:
            levels[level.location_id] = level
        location_name = level.location_name or target.location_name
        current = level.available_quantity
        new_quantity = target.quantity

        if current == new_quantity:
            return SyncOutcome(
                sku=sku,
                location=location_name,
                success=True,
                skipped=True,
                was_activated=resolved.was_activated,
                message=f"SKU {sku} at {location_name} already has correct quantity ({new_quantity})",
            )

        delta = new_quantity - current
        try:
            await self.inventory.adjust_available_quantity(inventory_item_id, level.location_id, delta)
        except ShopifyAPIError as e:
            logger.error("Failed to update SKU %s at %s: %s", sku, location_name, e)
            error = public_error_message(e)
            return SyncOutcome(
                sku=sku,
                location=location_name,
                success=False,
                skipped=False,
                was_activated=resolved.was_activated,
                error=error,
                message=f"Failed to update SKU {sku} at {location_name}: {error}",
            )
        levels[level.location_id] = replace(level, available_quantity=new_quantity)
        logger.info(
            "%s SKU %s at %s: %s -> %s (delta: %+d)",
            "Activated & updated" if resolved.was_activated else "Updated",
            sku, location_name, current, new_quantity, delta,
        )
        if resolved.was_activated:
            message = f"Activated & updated SKU {sku} at {location_name} to {new_quantity}"
        else:
            message = f"Updated SKU {sku} at {location_name} from {current} to {new_quantity}"
        return SyncOutcome(
            sku=sku,
            location=location_name,
            success=True,
            skipped=False,
            previous_quantity=current,
            new_quantity=new_quantity,
            delta=delta,
            was_activated=resolved.was_activated,
            message=message,
        )
