"""SQLAlchemy models for the sync audit log and the scheduled sync queue."""

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.sql import func

from sync_avito.config import SCHEMA
from sync_avito.models.base import Base


class SyncLog(Base):
    """
    Append-only audit entry for one action of a reconciliation attempt.

    details holds counters (created/updated/skipped) or the raw Avito error payloads.
    """

    __tablename__ = "sync_logs"
    __table_args__ = {"schema": SCHEMA}

    id = Column(UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()"))
    integration_id = Column(
        UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA}.integrations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    property_id = Column(UUID(as_uuid=True), nullable=False)
    action = Column(String, nullable=False)
    status = Column(String, nullable=False)  # success|warning|error
    error = Column(Text, nullable=True)
    details = Column(JSONB, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class SyncQueueItem(Base):
    """Scheduled reconciliation for an integration, consumed by the sync poller."""

    __tablename__ = "sync_queue"
    __table_args__ = {"schema": SCHEMA}

    id = Column(UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()"))
    integration_id = Column(
        UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA}.integrations.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    property_id = Column(UUID(as_uuid=True), nullable=False)
    next_sync_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    status = Column(String, nullable=False, server_default=text("'pending'"))
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
