import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.engine import Engine

from sync_avito.dependencies import get_db_engine
from sync_avito.errors import InvalidStateError, OAuthExchangeError
from sync_avito.schemas.integrations import OAuthCallbackPayload
from sync_avito.services.oauth import complete_oauth

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/oauth/callback", status_code=status.HTTP_200_OK)
def oauth_callback(
    payload: OAuthCallbackPayload,
    engine: Engine = Depends(get_db_engine),
) -> dict[str, object]:
    """
    Complete the Avito OAuth flow for a property.

    Args:
        payload: code, state and optional redirect_uri from the Avito redirect
        engine: Database engine

    Returns:
        dict: success flag with the integration, property and Avito account ids
    """
    try:
        result = complete_oauth(engine, payload.code, payload.state, payload.redirect_uri)
    except InvalidStateError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except OAuthExchangeError as e:
        logger.warning("oauth_exchange_failed", error=str(e), error_code=e.error_code)
        raise HTTPException(
            status_code=e.status_code,
            detail={"error": str(e), "errorCode": e.error_code},
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("oauth_callback_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return {
        "success": True,
        "integrationId": str(result.integration_id),
        "propertyId": str(result.property_id),
        "accountId": result.account_id,
    }
