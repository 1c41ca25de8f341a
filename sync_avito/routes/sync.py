import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from sync_avito.config import DRY_RUN
from sync_avito.dependencies import get_db_engine
from sync_avito.errors import IntegrationNotFoundError
from sync_avito.network.auth import refresh_expiring_tokens
from sync_avito.schemas.sync import SyncRequest, TokenRefreshResponse
from sync_avito.services.reconciler import reconcile_integration

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/sync")
def trigger_sync(payload: SyncRequest, engine: Engine = Depends(get_db_engine)) -> JSONResponse:
    """
    Reconcile an integration with Avito and return the structured outcome.

    Partial failures are returned with HTTP 200 and success=false. Invalid Avito
    identifiers return 400 and a missing credential 401 (requiresReconnect).

    Args:
        payload: integration_id and optional exclude_booking_id
        engine: Database engine

    Returns:
        JSONResponse: {success, synced, errors?, warnings?, bookings?}
    """
    use_dry_run = DRY_RUN if payload.dry_run is None else payload.dry_run
    try:
        outcome = reconcile_integration(
            engine,
            payload.integration_id,
            exclude_booking_id=payload.exclude_booking_id,
            dry_run=use_dry_run,
        )
    except IntegrationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("sync_failed", integration_id=str(payload.integration_id), error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    body = outcome.to_response().model_dump(mode="json", by_alias=True, exclude_none=True)
    return JSONResponse(status_code=outcome.http_status, content=body)


@router.post("/tokens/refresh", response_model=TokenRefreshResponse)
def refresh_tokens(engine: Engine = Depends(get_db_engine)) -> TokenRefreshResponse:
    """
    Renew every Avito token that expires within the next five minutes.

    Intended for a scheduler hitting the service periodically.
    """
    try:
        return TokenRefreshResponse(**refresh_expiring_tokens(engine))
    except Exception as e:
        logger.exception("token_refresh_batch_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
