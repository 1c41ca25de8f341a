"""Listing settings and availability checks for Avito integrations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy.engine import Engine

from sync_avito.db.readers.integrations import find_integration_by_item, get_integration
from sync_avito.db.writers.integrations import update_integration_settings
from sync_avito.db.writers.sync_queue import enqueue_sync
from sync_avito.errors import IntegrationNotFoundError
from sync_avito.network.auth import get_valid_token
from sync_avito.network.client import AvitoClient
from sync_avito.pushers.prices import LISTING_NOT_FOUND_MESSAGE
from sync_avito.utils.datetime import today_utc

logger = structlog.get_logger(__name__)

ITEM_IN_USE_MESSAGE = "This Avito listing is already connected to another property"


@dataclass(frozen=True)
class ItemValidation:
    available: bool
    status_code: int
    message: str


def validate_item(
    engine: Engine, integration_id: UUID, item_id: str, today: Optional[date] = None
) -> ItemValidation:
    """
    Check that an Avito listing exists for the account and is not used by another property.

    The bookings endpoint is queried with a one-day window; it answers 404 for
    listings that do not belong to the account.

    Args:
        engine: SQLAlchemy engine
        integration_id: Integration the listing would be attached to
        item_id: Avito listing id
        today: Override of the current date (tests)

    Returns:
        ItemValidation

    Raises:
        IntegrationNotFoundError: When the integration does not exist
        NoValidTokenError: When no credential is available
        requests.RequestException: On network failures
    """
    today = today or today_utc()
    with engine.connect() as conn:
        integration = get_integration(conn, integration_id)
        if integration is None:
            raise IntegrationNotFoundError(f"Integration {integration_id} not found or inactive")
        conflict = find_integration_by_item(conn, item_id, integration["property_id"])

    if conflict is not None:
        return ItemValidation(available=False, status_code=409, message=ITEM_IN_USE_MESSAGE)

    client = AvitoClient(
        get_valid_token(engine, integration_id),
        refresh=lambda: get_valid_token(engine, integration_id, force=True),
    )
    result = client.request(
        "GET",
        f"/realty/v1/accounts/{integration['avito_account_id']}/items/{item_id}/bookings",
        endpoint="validate_item",
        params={
            "date_start": today.isoformat(),
            "date_end": (today + timedelta(days=1)).isoformat(),
            "skip_error": "true",
        },
    )

    if result.ok or result.status_code == 409:
        return ItemValidation(available=True, status_code=200, message="Listing found in Avito")
    if result.status_code == 404:
        return ItemValidation(available=False, status_code=404, message=LISTING_NOT_FOUND_MESSAGE)

    _, message, _ = result.error()
    logger.warning("validate_item_failed", item_id=item_id, status_code=result.status_code)
    return ItemValidation(available=False, status_code=result.status_code, message=message)


def save_listing_settings(
    engine: Engine,
    integration_id: UUID,
    avito_item_id: Optional[str] = None,
    markup_type: Optional[str] = None,
    markup_value: Optional[Decimal] = None,
) -> bool:
    """
    Store listing settings and queue a sync when the integration has a listing.

    Returns:
        bool: True when a sync was queued

    Raises:
        IntegrationNotFoundError: When the integration does not exist
    """
    with engine.begin() as conn:
        integration = get_integration(conn, integration_id)
        if integration is None:
            raise IntegrationNotFoundError(f"Integration {integration_id} not found or inactive")

        update_integration_settings(
            conn,
            integration_id,
            avito_item_id=avito_item_id,
            markup_type=markup_type,
            markup_value=markup_value,
        )

        item_id = avito_item_id or integration["avito_item_id"]
        if item_id:
            enqueue_sync(conn, integration_id, integration["property_id"])

    logger.info("listing_settings_saved", integration_id=str(integration_id), sync_queued=bool(item_id))
    return bool(item_id)
