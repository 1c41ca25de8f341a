"""
Internal helper functions for integration route handlers.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.engine import Connection

from sync_avito.db.readers.integrations import (
    find_integration_by_item,
    get_integration,
    integration_exists,
)
from sync_avito.services.integrations import ITEM_IN_USE_MESSAGE


def validate_integration_exists_or_404(conn: Connection, integration_id: UUID) -> None:
    """
    Validate that an integration exists (active or not), raise 404 if not.

    Raises:
        HTTPException: 404 if the integration doesn't exist
    """
    if not integration_exists(conn, integration_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Integration {integration_id} not found",
        )


def get_active_integration_or_404(conn: Connection, integration_id: UUID) -> dict[str, Any]:
    """
    Fetch an active integration, raise 404 if it is missing or deactivated.

    Raises:
        HTTPException: 404 if the integration doesn't exist or is inactive
    """
    integration = get_integration(conn, integration_id)
    if integration is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Integration {integration_id} not found or inactive",
        )
    return integration


def validate_item_not_in_use_or_409(conn: Connection, item_id: str, property_id: UUID) -> None:
    """
    Validate that no other property is connected to the same Avito listing.

    Raises:
        HTTPException: 409 if the listing is already connected elsewhere
    """
    if find_integration_by_item(conn, item_id, property_id) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=ITEM_IN_USE_MESSAGE)
