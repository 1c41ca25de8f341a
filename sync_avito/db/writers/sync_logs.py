from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import insert
from sqlalchemy.engine import Engine

from sync_avito.models.sync_logs import SyncLog

logger = structlog.get_logger(__name__)


def insert_sync_logs(
    engine: Engine,
    integration_id: UUID,
    property_id: UUID,
    entries: list[dict[str, Any]],
    dry_run: bool = False,
) -> None:
    """
    Append audit entries for one reconciliation attempt.

    Args:
        engine (Engine): SQLAlchemy engine to open a transaction.
        integration_id (UUID): Integration the entries belong to.
        property_id (UUID): Property of the integration.
        entries (list[dict]): Dicts with action, status, and optional error and details.
        dry_run (bool): If True, skip DB writes and log only.
    """
    if not entries:
        return

    rows = [
        {
            "integration_id": integration_id,
            "property_id": property_id,
            "action": entry["action"],
            "status": entry["status"],
            "error": entry.get("error"),
            "details": entry.get("details"),
        }
        for entry in entries
    ]

    if dry_run:
        logger.info("dry_run_skip_sync_logs", integration_id=str(integration_id), count=len(rows))
        return

    with engine.begin() as conn:
        conn.execute(insert(SyncLog), rows)
