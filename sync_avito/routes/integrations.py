from typing import Any
from uuid import UUID

import requests
import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.engine import Engine

from sync_avito.cache import token_cache
from sync_avito.db.writers.integrations import hard_delete_integration, soft_delete_integration
from sync_avito.dependencies import get_db_engine
from sync_avito.errors import IntegrationNotFoundError, NoValidTokenError
from sync_avito.routes._integration_helpers import (
    get_active_integration_or_404,
    validate_integration_exists_or_404,
    validate_item_not_in_use_or_409,
)
from sync_avito.schemas.integrations import IntegrationUpdatePayload, ValidateItemPayload
from sync_avito.services.integrations import save_listing_settings, validate_item

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.patch("/integrations/{integration_id}", status_code=status.HTTP_200_OK)
def update_integration_endpoint(
    integration_id: UUID,
    payload: IntegrationUpdatePayload,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Update the Avito listing id and markup of an integration.

    A sync is queued whenever the integration ends up with a listing id.

    Args:
        integration_id: Integration to update
        payload: Fields to update
        engine: Database engine

    Returns:
        dict: Message and whether a sync was queued
    """
    try:
        update_data = {k: v for k, v in payload.model_dump().items() if v is not None}
        if not update_data:
            return {"message": "No fields to update", "syncQueued": False}

        with engine.connect() as conn:
            integration = get_active_integration_or_404(conn, integration_id)
            if payload.avito_item_id:
                validate_item_not_in_use_or_409(conn, payload.avito_item_id, integration["property_id"])

        queued = save_listing_settings(engine, integration_id, **update_data)
        logger.info("integration_updated", integration_id=str(integration_id), fields=sorted(update_data))
        return {"message": f"Integration {integration_id} updated", "syncQueued": queued}

    except IntegrationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("integration_update_failed", integration_id=str(integration_id), error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/integrations/{integration_id}/validate-item", status_code=status.HTTP_200_OK)
def validate_item_endpoint(
    integration_id: UUID,
    payload: ValidateItemPayload,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, Any]:
    """
    Check that an Avito listing id belongs to the connected account.

    Returns:
        dict: available flag, Avito status code and a user-facing message
    """
    try:
        result = validate_item(engine, integration_id, payload.avito_item_id)
    except IntegrationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except NoValidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": str(e), "errorCode": NoValidTokenError.error_code, "requiresReconnect": True},
        )
    except requests.RequestException as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Network error: {e}")
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("validate_item_failed", integration_id=str(integration_id), error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {"available": result.available, "statusCode": result.status_code, "message": result.message}


@router.delete("/integrations/{integration_id}", status_code=status.HTTP_200_OK)
def delete_integration_endpoint(
    integration_id: UUID,
    soft: bool = Query(True, description="Soft delete (set is_active=false) vs hard delete"),
    engine: Engine = Depends(get_db_engine),
) -> dict[str, str]:
    """
    Disconnect (soft) or remove (hard) an integration.

    Hard deletion cascades to the sync queue and audit log rows.
    """
    try:
        with engine.begin() as conn:
            validate_integration_exists_or_404(conn, integration_id)

            if soft:
                soft_delete_integration(conn, integration_id)
                logger.info("integration_soft_deleted", integration_id=str(integration_id))
                message = f"Integration {integration_id} deactivated (soft delete)"
            else:
                hard_delete_integration(conn, integration_id)
                logger.info("integration_hard_deleted", integration_id=str(integration_id))
                message = f"Integration {integration_id} permanently deleted"

        token_cache.invalidate(integration_id)
        return {"message": message}

    except HTTPException:
        raise
    except Exception as e:
        logger.exception("integration_deletion_failed", integration_id=str(integration_id), error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
