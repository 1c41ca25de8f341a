from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.engine import Connection

INTEGRATION_COLUMNS = """
    id, property_id, platform, avito_account_id, avito_item_id,
    markup_type, markup_value, access_token_encrypted, refresh_token_encrypted,
    token_expires_at, scope, is_active, last_sync_at
"""


def integration_exists(conn: Connection, integration_id: UUID) -> bool:
    """
    Check if an integration row exists (active or not).

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        integration_id (UUID): Integration primary key.

    Returns:
        bool: True if the integration exists, False otherwise.
    """
    result = conn.execute(
        text("SELECT 1 FROM pms.integrations WHERE id = :id"),
        {"id": integration_id},
    )
    return result.fetchone() is not None


def get_integration(
    conn: Connection, integration_id: UUID, active_only: bool = True
) -> Optional[dict[str, Any]]:
    """
    Fetch an Avito integration with its (encrypted) credentials.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        integration_id (UUID): Integration primary key.
        active_only (bool): Ignore deactivated integrations.

    Returns:
        Optional[dict[str, Any]]: Integration row as a dict, or None if not found.
    """
    query = f"SELECT {INTEGRATION_COLUMNS} FROM pms.integrations WHERE id = :id AND platform = 'avito'"
    if active_only:
        query += " AND is_active = TRUE"
    row = conn.execute(text(query), {"id": integration_id}).mappings().fetchone()
    return dict(row) if row else None


def get_token_state(conn: Connection, integration_id: UUID) -> Optional[dict[str, Any]]:
    """
    Fetch only the credential columns for an integration.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        integration_id (UUID): Integration primary key.

    Returns:
        Optional[dict]: property_id, access_token_encrypted, refresh_token_encrypted, token_expires_at
    """
    row = (
        conn.execute(
            text(
                """
                SELECT property_id, access_token_encrypted, refresh_token_encrypted, token_expires_at
                FROM pms.integrations
                WHERE id = :id
            """
            ),
            {"id": integration_id},
        )
        .mappings()
        .fetchone()
    )
    return dict(row) if row else None


def find_integration_by_item(
    conn: Connection, item_id: str, exclude_property_id: UUID
) -> Optional[dict[str, Any]]:
    """
    Find another property's active integration that already uses an Avito item.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        item_id (str): Avito listing (item) id.
        exclude_property_id (UUID): Property asking, ignored in the lookup.

    Returns:
        Optional[dict]: id and property_id of the conflicting integration.
    """
    row = (
        conn.execute(
            text(
                """
                SELECT id, property_id
                FROM pms.integrations
                WHERE platform = 'avito'
                  AND avito_item_id = :item_id
                  AND property_id <> :property_id
                  AND is_active = TRUE
                LIMIT 1
            """
            ),
            {"item_id": item_id, "property_id": exclude_property_id},
        )
        .mappings()
        .fetchone()
    )
    return dict(row) if row else None


def get_expiring_integrations(conn: Connection, expires_before: datetime) -> list[dict[str, Any]]:
    """
    List active integrations whose token expires before the given moment.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        expires_before (datetime): Upper bound on token_expires_at.

    Returns:
        list[dict]: Integration rows.
    """
    result = conn.execute(
        text(
            f"""
            SELECT {INTEGRATION_COLUMNS}
            FROM pms.integrations
            WHERE platform = 'avito'
              AND is_active = TRUE
              AND token_expires_at IS NOT NULL
              AND token_expires_at < :expires_before
            ORDER BY token_expires_at
        """
        ),
        {"expires_before": expires_before},
    )
    return [dict(row) for row in result.mappings()]


def get_active_integration_ids(conn: Connection) -> list[UUID]:
    """Return ids of all active Avito integrations that have a listing configured."""
    result = conn.execute(
        text(
            """
            SELECT id FROM pms.integrations
            WHERE platform = 'avito' AND is_active = TRUE AND avito_item_id IS NOT NULL
        """
        )
    )
    return [row[0] for row in result]
