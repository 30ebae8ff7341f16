"""
Exceptions raised by the inventory sync pipeline.

Only ConfigurationError and WarehouseAPIError are allowed to escape a sync run;
everything else is turned into an outcome or an item-level error.
"""
from typing import Optional


class InventorySyncError(Exception):
    """Base class for inventory sync failures."""


class ConfigurationError(InventorySyncError):
    """Missing endpoint or credentials. Raised before any network call."""


class WarehouseAPIError(InventorySyncError):
    """Warehouse fetch failed after retries; the whole fetch is aborted."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ShopifyAPIError(InventorySyncError):
    """Transport or GraphQL-level failure talking to the Shopify Admin API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ShopifyUserError(ShopifyAPIError):
    """A mutation returned userErrors. Business validation; never retried."""

    def __init__(self, message: str, field: Optional[list] = None):
        super().__init__(message)
        self.field = field


class LocationActivationError(InventorySyncError):
    """Shopify refused to start tracking an inventory item at a location."""

    def __init__(self, location_name: str, message: str):
        super().__init__(message)
        self.location_name = location_name


class SyncAlreadyRunningError(InventorySyncError):
    """Another sync run for the same shop is still in flight."""


SHOPIFY_REQUEST_FAILED = "Shopify API request failed"
UNEXPECTED_ITEM_ERROR = "Unexpected error while syncing item"


def public_error_message(error: BaseException) -> str:
    """
    Message safe to return to API callers. Shopify userErrors are business messages and pass
    through; transport and unexpected errors are reduced to a fixed text (full detail is logged).
    """
    cause = error
    if isinstance(error, LocationActivationError) and error.__cause__ is not None:
        cause = error.__cause__
    if isinstance(cause, ShopifyUserError):
        return str(cause)
    if isinstance(cause, ShopifyAPIError):
        if cause.status_code:
            return f"{SHOPIFY_REQUEST_FAILED} ({cause.status_code})"
        return SHOPIFY_REQUEST_FAILED
    return UNEXPECTED_ITEM_ERROR
