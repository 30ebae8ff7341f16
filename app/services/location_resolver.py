"""Match warehouse location labels to Shopify locations, activating tracking when needed."""
import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from app.services.errors import LocationActivationError, ShopifyAPIError
from app.services.inventory_types import CommerceInventoryLevel, ShopLocation

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_location_name(name: Optional[str]) -> str:
    """Lowercase, trim, collapse whitespace runs. Equal results mean the same location."""
    return _WHITESPACE_RE.sub(" ", (name or "").strip().lower())


@dataclass(frozen=True)
class ResolvedLocation:
    level: CommerceInventoryLevel
    was_activated: bool


async def resolve_location(
    inventory,
    inventory_item_id: str,
    warehouse_location_name: str,
    existing_levels: Sequence[CommerceInventoryLevel],
    shop_locations: Sequence[ShopLocation],
) -> Optional[ResolvedLocation]:
    """
    Find the Shopify inventory level for a warehouse location.
    Returns None when the shop has no location with that name (Unmatched).
    Raises LocationActivationError when Shopify refuses to activate the item there.
    """
    wanted = normalize_location_name(warehouse_location_name)

    for level in existing_levels:
        if normalize_location_name(level.location_name) == wanted:
            return ResolvedLocation(level=level, was_activated=False)

    target = next((loc for loc in shop_locations if normalize_location_name(loc.name) == wanted), None)
    if target is None:
        return None

    logger.info("Activating inventory item %s at %s", inventory_item_id, target.name)
    try:
        level = await inventory.activate_inventory(inventory_item_id, target)
    except ShopifyAPIError as e:
        raise LocationActivationError(warehouse_location_name, str(e)) from e
    return ResolvedLocation(level=level, was_activated=True)
