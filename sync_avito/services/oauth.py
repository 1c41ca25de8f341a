"""
Completion of the Avito OAuth connection flow.

The frontend starts the flow with a state blob (base64 JSON holding the
property id and the issue time in milliseconds). Avito redirects back with an
authorization code; this module exchanges it, resolves the Avito account id and
stores the integration. The first sync is queued once a listing id is set.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

import requests
import structlog
from sqlalchemy.engine import Engine

from sync_avito.config import AVITO_BASE_URL, AVITO_REDIRECT_URI, OAUTH_STATE_MAX_AGE_SECONDS
from sync_avito.crypto import encrypt_token
from sync_avito.db.writers.integrations import upsert_integration
from sync_avito.db.writers.sync_queue import enqueue_sync
from sync_avito.errors import InvalidStateError, OAuthExchangeError, TokenRequestError
from sync_avito.network.auth import exchange_authorization_code
from sync_avito.network.client import AvitoClient
from sync_avito.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

INVALID_GRANT_MESSAGE = (
    "The authorization code was already used or has expired; restart the Avito connection"
)


@dataclass(frozen=True)
class OAuthState:
    property_id: UUID
    issued_at: datetime


@dataclass(frozen=True)
class OAuthResult:
    integration_id: UUID
    property_id: UUID
    account_id: str


def decode_state(state: str, now: Optional[datetime] = None) -> OAuthState:
    """
    Decode and check the OAuth state blob.

    Args:
        state: base64 (standard or URL-safe, padding optional) JSON with
            property_id and timestamp in milliseconds
        now: Current time (tests)

    Returns:
        OAuthState

    Raises:
        InvalidStateError: When the blob is malformed, lacks a property id, or is
            older than OAUTH_STATE_MAX_AGE_SECONDS
    """
    padded = state + "=" * (-len(state) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.replace("+", "-").replace("/", "_"))
        data = json.loads(raw)
    except (binascii.Error, ValueError) as e:
        raise InvalidStateError("OAuth state is not valid base64 JSON") from e

    if not isinstance(data, dict) or not data.get("property_id"):
        raise InvalidStateError("OAuth state has no property_id")

    try:
        property_id = UUID(str(data["property_id"]))
        issued_at = datetime.fromtimestamp(int(data["timestamp"]) / 1000, tz=utc_now().tzinfo)
    except (KeyError, TypeError, ValueError, OverflowError, OSError) as e:
        raise InvalidStateError("OAuth state has an invalid property_id or timestamp") from e

    age = (now or utc_now()) - issued_at
    if age > timedelta(seconds=OAUTH_STATE_MAX_AGE_SECONDS):
        raise InvalidStateError("OAuth state has expired; restart the Avito connection")
    if age < timedelta(minutes=-5):
        raise InvalidStateError("OAuth state timestamp is in the future")

    return OAuthState(property_id=property_id, issued_at=issued_at)


def _account_id_from(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    user = body.get("user") if isinstance(body.get("user"), dict) else {}
    for value in (body.get("id"), body.get("account_id"), user.get("id"), body.get("user_id")):
        if value not in (None, ""):
            return str(value)
    return None


def fetch_account_id(client: AvitoClient) -> str:
    """
    Resolve the Avito user id of the token owner.

    Tries /core/v1/accounts/current and falls back to /core/v1/account when the
    first path is not available.

    Raises:
        OAuthExchangeError: When neither endpoint yields an id
    """
    result = client.request("GET", "/core/v1/accounts/current", endpoint="account")
    if result.status_code == 404:
        result = client.request("GET", "/core/v1/account", endpoint="account")

    if not result.ok:
        error_code, message, _ = result.error()
        raise OAuthExchangeError(
            f"Could not read the Avito account: {message}",
            status_code=502,
            error_code=error_code,
        )

    account_id = _account_id_from(result.json())
    if account_id is None:
        raise OAuthExchangeError("Avito account response has no id", status_code=502)
    return account_id


def complete_oauth(
    engine: Engine,
    code: str,
    state: str,
    redirect_uri: Optional[str] = None,
    now: Optional[datetime] = None,
) -> OAuthResult:
    """
    Exchange the code and store the integration.

    Reconnecting a property whose listing is already configured also queues a sync.

    Args:
        engine: SQLAlchemy engine
        code: Authorization code from the redirect
        state: State blob from the redirect
        redirect_uri: Redirect URI used to obtain the code
        now: Current time (tests)

    Returns:
        OAuthResult

    Raises:
        InvalidStateError: Bad or expired state
        OAuthExchangeError: Code exchange or account lookup failed
    """
    oauth_state = decode_state(state, now=now)

    try:
        grant = exchange_authorization_code(code, redirect_uri or AVITO_REDIRECT_URI)
    except TokenRequestError as e:
        if e.error_code == "invalid_grant":
            raise OAuthExchangeError(INVALID_GRANT_MESSAGE, status_code=400, error_code="invalid_grant") from e
        raise OAuthExchangeError(
            f"Avito token exchange failed: {e}", status_code=e.status_code or 502, error_code=e.error_code
        ) from e
    except requests.RequestException as e:
        raise OAuthExchangeError(f"Network error: {e}", status_code=502) from e

    try:
        account_id = fetch_account_id(AvitoClient(grant.access_token, base_url=AVITO_BASE_URL))
    except requests.RequestException as e:
        raise OAuthExchangeError(f"Network error: {e}", status_code=502) from e

    with engine.begin() as conn:
        integration_id, item_id = upsert_integration(
            conn,
            property_id=oauth_state.property_id,
            avito_account_id=account_id,
            access_token_encrypted=encrypt_token(grant.access_token),
            refresh_token_encrypted=encrypt_token(grant.refresh_token),
            token_expires_at=grant.expires_at,
            scope=grant.scope,
        )
        if item_id:
            enqueue_sync(conn, integration_id, oauth_state.property_id)

    logger.info(
        "oauth_completed",
        integration_id=str(integration_id),
        property_id=str(oauth_state.property_id),
        account_id=account_id,
    )
    return OAuthResult(integration_id=integration_id, property_id=oauth_state.property_id, account_id=account_id)
