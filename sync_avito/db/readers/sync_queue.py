from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Connection

# A processing claim older than this belongs to a poller run that never finished.
PROCESSING_LEASE = timedelta(minutes=15)


def get_due_queue_items(
    conn: Connection, now: datetime, limit: int = 10, lease: timedelta = PROCESSING_LEASE
) -> list[dict[str, Any]]:
    """
    Fetch sync queue rows that are ready to run.

    A row is ready when it is pending and its next_sync_at has passed, or when
    it has been held in processing for longer than the lease. Rows are locked
    with SKIP LOCKED so overlapping poller runs do not pick the same integration.

    Args:
        conn (Connection): Connection inside an open transaction.
        now (datetime): Current time.
        limit (int): Maximum rows to return.
        lease (timedelta): How long a processing claim is honoured.

    Returns:
        list[dict]: id, integration_id, property_id, next_sync_at
    """
    result = conn.execute(
        text(
            """
            SELECT id, integration_id, property_id, next_sync_at
            FROM pms.sync_queue
            WHERE (status = 'pending' AND next_sync_at <= :now)
               OR (status = 'processing' AND updated_at < :stale_before)
            ORDER BY next_sync_at
            LIMIT :limit
            FOR UPDATE SKIP LOCKED
        """
        ),
        {"now": now, "stale_before": now - lease, "limit": limit},
    )
    return [dict(row) for row in result.mappings()]
