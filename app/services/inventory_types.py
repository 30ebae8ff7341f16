"""
Run-scoped value objects for the warehouse → Shopify inventory sync.
Produced fresh by each run and never shared across runs.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class LocationQuantity:
    location_name: str
    quantity: int


@dataclass(frozen=True)
class CanonicalInventoryItem:
    """Merged per-SKU view of warehouse stock across every configured location."""
    sku: str
    product_name: str
    locations: Tuple[LocationQuantity, ...]


@dataclass(frozen=True)
class CommerceVariantRef:
    variant_id: str
    inventory_item_id: str
    sku: str


@dataclass(frozen=True)
class CommerceInventoryLevel:
    location_id: str
    location_name: str
    available_quantity: int


@dataclass(frozen=True)
class ShopLocation:
    id: str
    name: str


@dataclass(frozen=True)
class SyncOutcome:
    """Result of reconciling one (SKU, location) pair."""
    sku: str
    location: str
    success: bool
    skipped: bool
    message: str
    previous_quantity: Optional[int] = None
    new_quantity: Optional[int] = None
    delta: Optional[int] = None
    was_activated: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "sku": self.sku,
            "location": self.location,
            "success": self.success,
            "skipped": self.skipped,
            "message": self.message,
        }
        if self.previous_quantity is not None:
            data["previousQuantity"] = self.previous_quantity
        if self.new_quantity is not None:
            data["newQuantity"] = self.new_quantity
        if self.delta is not None:
            data["delta"] = self.delta
        if self.was_activated:
            data["wasActivated"] = True
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class ItemError:
    """Unexpected failure while reconciling a whole item."""
    sku: str
    error: str

    def to_dict(self) -> Dict[str, str]:
        return {"sku": self.sku, "error": self.error}


@dataclass(frozen=True)
class SyncRunSummary:
    total_items: int
    success_count: int
    failed_count: int
    skipped_count: int
    total_location_ops: int
    duration: float  # seconds
    started_at: datetime
    completed_at: datetime
    status: str

    @property
    def duration_ms(self) -> int:
        return int(round(self.duration * 1000))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total_items,
            "success": self.success_count,
            "failed": self.failed_count,
            "skipped": self.skipped_count,
            "totalLocations": self.total_location_ops,
            "duration": f"{self.duration:.2f}s",
            "durationMs": self.duration_ms,
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat(),
            "status": self.status,
        }


@dataclass
class SyncRunResult:
    """Everything a caller of run_sync() receives: summary, ordered outcomes and item errors."""
    summary: SyncRunSummary
    results: List[SyncOutcome] = field(default_factory=list)
    errors: List[ItemError] = field(default_factory=list)
    message: Optional[str] = None
    log_id: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.summary.status == "success"

    def to_dict(self, max_results: Optional[int] = None) -> Dict[str, Any]:
        results = self.results if max_results is None else self.results[:max_results]
        return {
            "success": self.success,
            "summary": self.summary.to_dict(),
            "results": [r.to_dict() for r in results],
            "errors": [e.to_dict() for e in self.errors],
            "message": self.message,
            "logId": self.log_id,
        }
