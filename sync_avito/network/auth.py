"""
Avito OAuth token management.

Avito's token endpoint supports three grants: authorization_code (OAuth
callback), refresh_token (normal renewal) and client_credentials (service-level
token, used only as a fallback when a refresh fails). Renewal is modelled as an
explicit state machine so the fallback is a visible transition:

    HAVE_REFRESH_TOKEN -> TRY_REFRESH -> SUCCESS
                                      -> FALLBACK_CLIENT_CREDENTIALS -> SUCCESS | FAILED

A renewed credential is persisted with an update conditional on the expiry read
before renewing. When a concurrent reconciliation already stored a newer token
the update matches nothing and the stored token is used instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional
from uuid import UUID

import requests
import structlog
from sqlalchemy.engine import Engine

from sync_avito.cache import REFRESH_MARGIN, token_cache
from sync_avito.config import AVITO_BASE_URL, AVITO_CLIENT_ID, AVITO_CLIENT_SECRET
from sync_avito.crypto import decrypt_token, encrypt_token
from sync_avito.db.readers.integrations import get_expiring_integrations, get_token_state
from sync_avito.db.writers.integrations import update_integration_tokens
from sync_avito.db.writers.sync_logs import insert_sync_logs
from sync_avito.errors import (
    IntegrationNotFoundError,
    NoValidTokenError,
    SyncAvitoError,
    TokenRequestError,
)
from sync_avito.metrics import token_cache_hits, token_refreshes
from sync_avito.network.client import send_with_retry
from sync_avito.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

TOKEN_URL = f"{AVITO_BASE_URL}/token"
DEFAULT_EXPIRES_IN = 3600


class TokenState(Enum):
    HAVE_REFRESH_TOKEN = "have_refresh_token"
    TRY_REFRESH = "try_refresh"
    FALLBACK_CLIENT_CREDENTIALS = "fallback_client_credentials"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class TokenGrant:
    """Result of a successful call to the token endpoint."""

    access_token: str
    expires_at: datetime
    grant_type: str
    refresh_token: Optional[str] = None
    scope: Optional[str] = None


def needs_refresh(
    expires_at: Optional[datetime],
    now: Optional[datetime] = None,
    margin: timedelta = REFRESH_MARGIN,
) -> bool:
    """
    Decide whether a stored credential must be renewed before use.

    Args:
        expires_at: Stored expiry, None when unknown
        now: Current time
        margin: Safety margin before expiry

    Returns:
        bool: True when the expiry is unknown or within the margin of now
    """
    if expires_at is None:
        return True
    return expires_at - (now or utc_now()) <= margin


def request_token(data: dict[str, Any]) -> TokenGrant:
    """
    Call the Avito token endpoint with a form-encoded grant.

    Args:
        data: Grant parameters (grant_type and its fields); client credentials are added here

    Returns:
        TokenGrant with an absolute expiry

    Raises:
        TokenRequestError: On a non-2xx response or a body without access_token
        requests.RequestException: On network failures
    """
    grant_type = data["grant_type"]
    payload = {**data, "client_id": AVITO_CLIENT_ID, "client_secret": AVITO_CLIENT_SECRET}

    result = send_with_retry(
        "POST",
        TOKEN_URL,
        endpoint="token",
        data=payload,
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )

    if not result.ok:
        error_code, message, _ = result.error()
        token_refreshes.labels(grant_type=grant_type, status="failure").inc()
        logger.error(
            "token_request_failed",
            grant_type=grant_type,
            status_code=result.status_code,
            error_code=error_code,
        )
        raise TokenRequestError(message, status_code=result.status_code, error_code=error_code)

    body = result.json() or {}
    token = body.get("access_token")
    if not isinstance(token, str) or not token:
        token_refreshes.labels(grant_type=grant_type, status="failure").inc()
        raise TokenRequestError("No access_token in Avito response.", status_code=result.status_code)

    expires_in = body.get("expires_in") or DEFAULT_EXPIRES_IN
    token_refreshes.labels(grant_type=grant_type, status="success").inc()

    return TokenGrant(
        access_token=token,
        expires_at=utc_now() + timedelta(seconds=int(expires_in)),
        grant_type=grant_type,
        refresh_token=body.get("refresh_token") or None,
        scope=body.get("scope") or None,
    )


def exchange_authorization_code(code: str, redirect_uri: Optional[str] = None) -> TokenGrant:
    """Exchange an OAuth authorization code for an account token."""
    data = {"grant_type": "authorization_code", "code": code}
    if redirect_uri:
        data["redirect_uri"] = redirect_uri
    return request_token(data)


def refresh_token_grant(refresh_token: str) -> TokenGrant:
    return request_token({"grant_type": "refresh_token", "refresh_token": refresh_token})


def client_credentials_grant() -> TokenGrant:
    return request_token({"grant_type": "client_credentials"})


def acquire_token(refresh_token: Optional[str]) -> TokenGrant:
    """
    Run the renewal state machine.

    Args:
        refresh_token: Stored refresh token, None if the account has none

    Returns:
        TokenGrant from whichever grant succeeded

    Raises:
        NoValidTokenError: When no refresh token exists or both grants fail
    """
    state = TokenState.HAVE_REFRESH_TOKEN if refresh_token else TokenState.FAILED
    grant: Optional[TokenGrant] = None

    while state not in (TokenState.SUCCESS, TokenState.FAILED):
        if state is TokenState.HAVE_REFRESH_TOKEN:
            state = TokenState.TRY_REFRESH

        elif state is TokenState.TRY_REFRESH:
            try:
                grant = refresh_token_grant(str(refresh_token))
                state = TokenState.SUCCESS
            except (TokenRequestError, requests.RequestException) as e:
                logger.warning("refresh_grant_failed_falling_back", error=str(e))
                state = TokenState.FALLBACK_CLIENT_CREDENTIALS

        elif state is TokenState.FALLBACK_CLIENT_CREDENTIALS:
            try:
                grant = client_credentials_grant()
                state = TokenState.SUCCESS
            except (TokenRequestError, requests.RequestException) as e:
                logger.error("client_credentials_grant_failed", error=str(e))
                state = TokenState.FAILED

    if state is TokenState.FAILED or grant is None:
        raise NoValidTokenError("Avito token expired and could not be refreshed; reconnect the account")
    return grant


def _audit_refresh(
    engine: Engine,
    integration_id: UUID,
    property_id: UUID,
    grant: Optional[TokenGrant] = None,
    error: Optional[Exception] = None,
) -> None:
    """Append a refresh_token audit entry for a stored grant or a failed renewal."""
    if grant is not None:
        entry = {
            "action": "refresh_token",
            "status": "success",
            "details": {"grant_type": grant.grant_type, "expires_at": grant.expires_at.isoformat()},
        }
    else:
        entry = {
            "action": "refresh_token",
            "status": "error",
            "error": str(error),
            "details": {"error_code": NoValidTokenError.error_code},
        }
    insert_sync_logs(engine, integration_id, property_id, [entry])


def get_valid_token(
    engine: Engine,
    integration_id: UUID,
    force: bool = False,
    now: Optional[datetime] = None,
) -> str:
    """
    Return a usable Avito access token for an integration.

    Checks the cache, then the database, and renews when the stored expiry is
    within REFRESH_MARGIN of now (or when force is set after a 401).

    Args:
        engine: SQLAlchemy engine
        integration_id: Integration primary key
        force: Renew even if the stored token looks valid
        now: Current time (tests)

    Returns:
        str: Plaintext bearer token

    Raises:
        IntegrationNotFoundError: When the integration does not exist
        NoValidTokenError: When no token can be obtained
    """
    now = now or utc_now()

    if force:
        token_cache.invalidate(integration_id)
    else:
        cached = token_cache.get(integration_id, now=now)
        if cached:
            token_cache_hits.inc()
            return cached

    with engine.connect() as conn:
        state = get_token_state(conn, integration_id)
    if state is None:
        raise IntegrationNotFoundError(f"Integration {integration_id} not found")

    access_token = decrypt_token(state["access_token_encrypted"])
    refresh_token = decrypt_token(state["refresh_token_encrypted"])
    expires_at: Optional[datetime] = state["token_expires_at"]

    if not force and access_token and not needs_refresh(expires_at, now):
        token_cache.set(integration_id, access_token, expires_at or now)
        return access_token

    if not refresh_token:
        if not force and access_token and expires_at is not None and expires_at > now:
            logger.warning("token_expiring_without_refresh_token", integration_id=str(integration_id))
            return access_token
        error = NoValidTokenError("Avito token expired and no refresh token is stored; reconnect the account")
        _audit_refresh(engine, integration_id, state["property_id"], error=error)
        raise error

    try:
        grant = acquire_token(refresh_token)
    except NoValidTokenError as e:
        _audit_refresh(engine, integration_id, state["property_id"], error=e)
        raise

    with engine.begin() as conn:
        stored = update_integration_tokens(
            conn,
            integration_id,
            access_token_encrypted=str(encrypt_token(grant.access_token)),
            token_expires_at=grant.expires_at,
            previous_expires_at=expires_at,
            refresh_token_encrypted=encrypt_token(grant.refresh_token),
            scope=grant.scope,
        )

    token, token_expires_at = grant.access_token, grant.expires_at
    if not stored:
        # Another invocation renewed first.
        with engine.connect() as conn:
            latest = get_token_state(conn, integration_id)
        latest_token = decrypt_token(latest["access_token_encrypted"]) if latest else None
        if latest and latest_token:
            token, token_expires_at = latest_token, latest["token_expires_at"] or grant.expires_at
        logger.info("token_refreshed_concurrently", integration_id=str(integration_id))
    else:
        logger.info(
            "token_refreshed",
            integration_id=str(integration_id),
            grant_type=grant.grant_type,
            expires_at=grant.expires_at.isoformat(),
        )
        _audit_refresh(engine, integration_id, state["property_id"], grant=grant)

    token_cache.set(integration_id, token, token_expires_at)
    return token


def refresh_expiring_tokens(engine: Engine, now: Optional[datetime] = None) -> dict[str, Any]:
    """
    Renew every active integration whose token expires within REFRESH_MARGIN.

    Args:
        engine: SQLAlchemy engine
        now: Current time (tests)

    Returns:
        dict: refreshed, failed, total and per-integration errors
    """
    now = now or utc_now()
    with engine.connect() as conn:
        integrations = get_expiring_integrations(conn, now + REFRESH_MARGIN)

    refreshed = 0
    errors: list[dict[str, str]] = []
    for integration in integrations:
        integration_id = integration["id"]
        try:
            get_valid_token(engine, integration_id, force=True, now=now)
            refreshed += 1
        except (SyncAvitoError, ValueError) as e:
            logger.warning("batch_token_refresh_failed", integration_id=str(integration_id), error=str(e))
            errors.append({"integration_id": str(integration_id), "error": str(e)})

    logger.info("batch_token_refresh_completed", refreshed=refreshed, failed=len(errors))
    return {
        "refreshed": refreshed,
        "failed": len(errors),
        "total": len(integrations),
        "errors": errors,
    }
