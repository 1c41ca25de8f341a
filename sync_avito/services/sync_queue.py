"""Scheduled reconciliation driven by the sync_queue table."""

from datetime import timedelta
from typing import Optional

import structlog
from sqlalchemy.engine import Engine

from sync_avito.config import SYNC_INTERVAL_SECONDS
from sync_avito.db.readers.integrations import get_active_integration_ids
from sync_avito.db.readers.sync_queue import get_due_queue_items
from sync_avito.db.writers.sync_queue import (
    mark_queue_item_done,
    mark_queue_item_failed,
    mark_queue_items_processing,
)
from sync_avito.errors import SyncAvitoError
from sync_avito.services.reconciler import reconcile_integration
from sync_avito.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

QUEUE_BATCH_SIZE = 10


def process_sync_queue(
    engine: Engine, dry_run: bool = False, limit: int = QUEUE_BATCH_SIZE
) -> dict[str, int]:
    """
    Reconcile integrations whose queue entry is due.

    A completed attempt (even with operation-level errors) reschedules the entry
    SYNC_INTERVAL_SECONDS later; an attempt that could not run (missing
    integration, no credential, invalid identifiers) parks it as failed.

    Args:
        engine: SQLAlchemy engine
        dry_run: Passed to the reconciler
        limit: Maximum entries per run

    Returns:
        dict: processed, succeeded, failed counts
    """
    with engine.begin() as conn:
        items = get_due_queue_items(conn, utc_now(), limit=limit)
        mark_queue_items_processing(conn, [item["id"] for item in items])

    succeeded = failed = 0
    for item in items:
        error: Optional[str] = None
        try:
            outcome = reconcile_integration(engine, item["integration_id"], dry_run=dry_run)
            if not outcome.synced:
                error = outcome.to_response().error_message or "sync did not run"
        except SyncAvitoError as e:
            error = str(e)
        except Exception as e:
            logger.exception("queued_sync_crashed", integration_id=str(item["integration_id"]))
            error = f"Unexpected error: {e}"

        with engine.begin() as conn:
            if error is None:
                mark_queue_item_done(
                    conn, item["id"], utc_now() + timedelta(seconds=SYNC_INTERVAL_SECONDS)
                )
                succeeded += 1
            else:
                mark_queue_item_failed(conn, item["id"], error)
                failed += 1
                logger.warning("queued_sync_failed", integration_id=str(item["integration_id"]), error=error)

    logger.info("sync_queue_processed", processed=len(items), succeeded=succeeded, failed=failed)
    return {"processed": len(items), "succeeded": succeeded, "failed": failed}


def sync_all_integrations(engine: Engine, dry_run: bool = False) -> None:
    """
    Reconcile every active integration that has a listing configured.

    Args:
        engine: SQLAlchemy engine
        dry_run: Passed to the reconciler
    """
    with engine.connect() as conn:
        integration_ids = get_active_integration_ids(conn)

    for integration_id in integration_ids:
        try:
            reconcile_integration(engine, integration_id, dry_run=dry_run)
        except Exception as e:
            logger.exception("integration_sync_failed", integration_id=str(integration_id), error=str(e))
