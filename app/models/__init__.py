"""
SQLAlchemy models.
All model and enum definitions live here for simplicity and to avoid circular imports.
"""
from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text, Enum as SQLEnum
from sqlalchemy.sql import func
from app.database import Base
import enum
import uuid


# Enums
class SyncRunStatus(str, enum.Enum):
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


# Models
class ShopifySession(Base):
    """Admin API session stored by the OAuth install flow. Offline sessions power scheduled syncs."""
    __tablename__ = "shopify_sessions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    shop = Column("shop", String, nullable=False, index=True)
    access_token = Column("access_token", String, nullable=False)
    scope = Column("scope", String, nullable=True)
    is_online = Column("is_online", Boolean, default=False, nullable=False)
    expires_at = Column("expires_at", DateTime, nullable=True)
    created_at = Column("created_at", DateTime, server_default=func.now())
    updated_at = Column("updated_at", DateTime, server_default=func.now(), onupdate=func.now())


class InventorySyncLog(Base):
    """One row per inventory sync run: created as running, finalized once."""
    __tablename__ = "inventory_sync_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    shop = Column("shop", String, nullable=False, index=True)
    started_at = Column("started_at", DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column("completed_at", DateTime(timezone=True), nullable=True)
    status = Column(SQLEnum(SyncRunStatus), nullable=False, default=SyncRunStatus.RUNNING)
    total_items = Column("total_items", Integer, default=0, nullable=False)
    success_count = Column("success_count", Integer, default=0, nullable=False)
    failed_count = Column("failed_count", Integer, default=0, nullable=False)
    skipped_count = Column("skipped_count", Integer, default=0, nullable=False)
    duration_ms = Column("duration_ms", Integer, nullable=True)
    error_message = Column("error_message", String, nullable=True)
    result_summary = Column("result_summary", Text, nullable=True)  # JSON
    created_at = Column("created_at", DateTime, server_default=func.now())
