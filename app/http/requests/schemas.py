"""
Pydantic schemas for request/response validation (Http/Requests).
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


# Inventory sync log schemas
class SyncLogResponse(BaseModel):
    id: int
    shop: str
    status: Optional[str] = None
    startedAt: Optional[str] = None
    completedAt: Optional[str] = None
    totalItems: int = 0
    successCount: int = 0
    failedCount: int = 0
    skippedCount: int = 0
    durationMs: Optional[int] = None
    errorMessage: Optional[str] = None
    resultSummary: Optional[Dict[str, Any]] = None


class SyncLogsResponse(BaseModel):
    shop: str
    logs: List[SyncLogResponse]


class SyncStatsResponse(BaseModel):
    shop: str
    totalSyncs: int = 0
    successfulSyncs: int = 0
    partialSyncs: int = 0
    failedSyncs: int = 0
    runningSyncs: int = 0
    successRate: float = Field(0.0, description="Percent of finished runs with status success")
    lastSync: Optional[SyncLogResponse] = None
