from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy import delete, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.engine import Connection

from sync_avito.models.integrations import Integration
from sync_avito.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


def upsert_integration(
    conn: Connection,
    property_id: UUID,
    avito_account_id: str,
    access_token_encrypted: Optional[str],
    refresh_token_encrypted: Optional[str],
    token_expires_at: datetime,
    scope: Optional[str],
) -> tuple[UUID, Optional[str]]:
    """
    Create or reconnect the Avito integration of a property.

    Keyed on (property_id, platform). Reconnecting replaces the credentials and
    reactivates the row but keeps the configured item id and markup.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        property_id (UUID): Property being connected.
        avito_account_id (str): Avito user (account) id.
        access_token_encrypted (Optional[str]): Encrypted access token.
        refresh_token_encrypted (Optional[str]): Encrypted refresh token.
        token_expires_at (datetime): Access token expiry.
        scope (Optional[str]): Granted OAuth scope.

    Returns:
        tuple: Integration id and the already configured Avito item id, if any.
    """
    now = utc_now()
    stmt = insert(Integration).values(
        property_id=property_id,
        platform="avito",
        avito_account_id=avito_account_id,
        access_token_encrypted=access_token_encrypted,
        refresh_token_encrypted=refresh_token_encrypted,
        token_expires_at=token_expires_at,
        scope=scope,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["property_id", "platform"],
        set_={
            "avito_account_id": stmt.excluded.avito_account_id,
            "access_token_encrypted": stmt.excluded.access_token_encrypted,
            "refresh_token_encrypted": stmt.excluded.refresh_token_encrypted,
            "token_expires_at": stmt.excluded.token_expires_at,
            "scope": stmt.excluded.scope,
            "is_active": True,
            "updated_at": stmt.excluded.updated_at,
        },
    ).returning(Integration.id, Integration.avito_item_id)

    integration_id, item_id = conn.execute(stmt).one()
    logger.info("integration_upserted", integration_id=str(integration_id), property_id=str(property_id))
    return integration_id, item_id


def update_integration_tokens(
    conn: Connection,
    integration_id: UUID,
    access_token_encrypted: str,
    token_expires_at: datetime,
    previous_expires_at: Optional[datetime],
    refresh_token_encrypted: Optional[str] = None,
    scope: Optional[str] = None,
) -> bool:
    """
    Persist a refreshed credential unless another writer got there first.

    The update is conditional on token_expires_at still holding the value this
    process read before refreshing. A concurrent refresh changes the expiry, so
    the second writer matches no row and must re-read instead of overwriting.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        integration_id (UUID): Integration primary key.
        access_token_encrypted (str): New encrypted access token.
        token_expires_at (datetime): New expiry.
        previous_expires_at (Optional[datetime]): Expiry read before the refresh.
        refresh_token_encrypted (Optional[str]): New encrypted refresh token, kept if None.
        scope (Optional[str]): New scope, kept if None.

    Returns:
        bool: True if this call stored the credential.
    """
    values: dict[str, Any] = {
        "access_token_encrypted": access_token_encrypted,
        "token_expires_at": token_expires_at,
        "updated_at": utc_now(),
    }
    if refresh_token_encrypted is not None:
        values["refresh_token_encrypted"] = refresh_token_encrypted
    if scope is not None:
        values["scope"] = scope

    stmt = (
        update(Integration)
        .where(Integration.id == integration_id)
        .where(Integration.token_expires_at.is_not_distinct_from(previous_expires_at))
        .values(**values)
    )
    result = conn.execute(stmt)
    return result.rowcount == 1


def update_integration_settings(
    conn: Connection,
    integration_id: UUID,
    avito_item_id: Optional[str] = None,
    markup_type: Optional[str] = None,
    markup_value: Optional[Decimal] = None,
) -> None:
    """
    Update listing settings of an integration. None values are left untouched.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        integration_id (UUID): Integration primary key.
        avito_item_id (Optional[str]): Avito listing id.
        markup_type (Optional[str]): "percent" or "fixed".
        markup_value (Optional[Decimal]): Markup amount.
    """
    values: dict[str, Any] = {
        k: v
        for k, v in {
            "avito_item_id": avito_item_id,
            "markup_type": markup_type,
            "markup_value": markup_value,
        }.items()
        if v is not None
    }
    values["updated_at"] = utc_now()

    conn.execute(update(Integration).where(Integration.id == integration_id).values(**values))


def soft_delete_integration(conn: Connection, integration_id: UUID) -> None:
    """
    Deactivate an integration (user disconnect).

    Args:
        conn (Connection): SQLAlchemy DB connection.
        integration_id (UUID): Integration primary key.
    """
    stmt = (
        update(Integration)
        .where(Integration.id == integration_id)
        .values(is_active=False, updated_at=utc_now())
    )
    conn.execute(stmt)


def hard_delete_integration(conn: Connection, integration_id: UUID) -> None:
    """
    Permanently delete an integration. Sync queue and audit rows cascade.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        integration_id (UUID): Integration primary key.
    """
    conn.execute(delete(Integration).where(Integration.id == integration_id))


def update_last_sync(conn: Connection, integration_id: UUID) -> None:
    """
    Stamp last_sync_at after a completed reconciliation.

    is_active is left untouched so a disconnect made during the attempt stands.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        integration_id (UUID): Integration primary key.
    """
    now = utc_now()
    stmt = (
        update(Integration)
        .where(Integration.id == integration_id)
        .values(last_sync_at=now, updated_at=now)
    )
    conn.execute(stmt)
