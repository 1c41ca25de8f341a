from datetime import datetime
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.engine import Connection

from sync_avito.models.sync_logs import SyncQueueItem
from sync_avito.utils.datetime import utc_now


def enqueue_sync(
    conn: Connection, integration_id: UUID, property_id: UUID, next_sync_at: datetime | None = None
) -> None:
    """
    Schedule (or reschedule) a reconciliation for an integration.

    A failed row is reset to pending.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        integration_id (UUID): Integration to reconcile.
        property_id (UUID): Property of the integration.
        next_sync_at (datetime | None): When to run; defaults to now.
    """
    now = utc_now()
    stmt = insert(SyncQueueItem).values(
        integration_id=integration_id,
        property_id=property_id,
        next_sync_at=next_sync_at or now,
        status="pending",
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["integration_id"],
        set_={
            "next_sync_at": stmt.excluded.next_sync_at,
            "status": "pending",
            "last_error": None,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    conn.execute(stmt)


def mark_queue_items_processing(conn: Connection, item_ids: list[UUID]) -> None:
    """Claim queue rows so a concurrent poller run skips them."""
    if not item_ids:
        return
    conn.execute(
        update(SyncQueueItem)
        .where(SyncQueueItem.id.in_(item_ids))
        .values(status="processing", updated_at=utc_now())
    )


def mark_queue_item_done(conn: Connection, item_id: UUID, next_sync_at: datetime) -> None:
    """Return a processed row to pending with its next run time."""
    conn.execute(
        update(SyncQueueItem)
        .where(SyncQueueItem.id == item_id)
        .values(status="pending", next_sync_at=next_sync_at, last_error=None, updated_at=utc_now())
    )


def mark_queue_item_failed(conn: Connection, item_id: UUID, error: str) -> None:
    """Park a row as failed; it stays out of the queue until re-enqueued."""
    conn.execute(
        update(SyncQueueItem)
        .where(SyncQueueItem.id == item_id)
        .values(status="failed", last_error=error, updated_at=utc_now())
    )
