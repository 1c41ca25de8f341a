"""
Unit tests for network/auth.py token management.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, Mock, patch
from uuid import uuid4

import pytest
import requests

from sync_avito.crypto import encrypt_token
from sync_avito.errors import NoValidTokenError, TokenRequestError
from sync_avito.network.auth import (
    TOKEN_URL,
    TokenGrant,
    acquire_token,
    get_valid_token,
    needs_refresh,
    refresh_expiring_tokens,
    request_token,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
PROPERTY_ID = uuid4()


def _grant(token: str = "new-token", grant_type: str = "refresh_token") -> TokenGrant:
    return TokenGrant(
        access_token=token,
        expires_at=NOW + timedelta(hours=1),
        grant_type=grant_type,
        refresh_token="new-refresh",
        scope="items:info",
    )


def _mock_engine() -> MagicMock:
    engine = MagicMock()
    engine.connect.return_value.__enter__.return_value = MagicMock()
    engine.begin.return_value.__enter__.return_value = MagicMock()
    return engine


def _token_state(expires_at, access="old-token", refresh="old-refresh") -> dict:
    return {
        "property_id": PROPERTY_ID,
        "access_token_encrypted": encrypt_token(access),
        "refresh_token_encrypted": encrypt_token(refresh),
        "token_expires_at": expires_at,
    }


@pytest.mark.unit
def test_needs_refresh_when_expiry_within_margin() -> None:
    assert needs_refresh(NOW + timedelta(minutes=2), now=NOW) is True


@pytest.mark.unit
def test_needs_refresh_false_when_expiry_far_enough() -> None:
    assert needs_refresh(NOW + timedelta(minutes=10), now=NOW) is False


@pytest.mark.unit
def test_needs_refresh_when_expiry_unknown_or_past() -> None:
    assert needs_refresh(None, now=NOW) is True
    assert needs_refresh(NOW - timedelta(seconds=1), now=NOW) is True


@pytest.mark.unit
@patch("sync_avito.network.auth.send_with_retry")
def test_request_token_posts_form_with_client_credentials(mock_send: Mock, api_response) -> None:
    from sync_avito.network.client import ApiResult

    mock_send.return_value = ApiResult(
        api_response(200, {"access_token": "abc", "expires_in": 86400, "refresh_token": "r1"})
    )

    grant = request_token({"grant_type": "refresh_token", "refresh_token": "r0"})

    assert grant.access_token == "abc"
    assert grant.refresh_token == "r1"
    assert grant.grant_type == "refresh_token"
    args, kwargs = mock_send.call_args
    assert args == ("POST", TOKEN_URL)
    assert kwargs["data"]["client_id"] == "test-client-id"
    assert kwargs["data"]["client_secret"] == "test-client-secret"
    assert kwargs["data"]["refresh_token"] == "r0"


@pytest.mark.unit
@patch("sync_avito.network.auth.send_with_retry")
def test_request_token_defaults_expiry_to_one_hour(mock_send: Mock, api_response) -> None:
    from sync_avito.network.client import ApiResult

    mock_send.return_value = ApiResult(api_response(200, {"access_token": "abc"}))

    with patch("sync_avito.network.auth.utc_now", return_value=NOW):
        grant = request_token({"grant_type": "client_credentials"})

    assert grant.expires_at == NOW + timedelta(seconds=3600)


@pytest.mark.unit
@patch("sync_avito.network.auth.send_with_retry")
def test_request_token_raises_with_oauth_error_code(mock_send: Mock, api_response) -> None:
    from sync_avito.network.client import ApiResult

    mock_send.return_value = ApiResult(
        api_response(400, {"error": "invalid_grant", "error_description": "code already used"})
    )

    with pytest.raises(TokenRequestError) as exc_info:
        request_token({"grant_type": "authorization_code", "code": "c"})

    assert exc_info.value.error_code == "invalid_grant"
    assert exc_info.value.status_code == 400


@pytest.mark.unit
@patch("sync_avito.network.auth.send_with_retry")
def test_request_token_raises_on_missing_access_token(mock_send: Mock, api_response) -> None:
    from sync_avito.network.client import ApiResult

    mock_send.return_value = ApiResult(api_response(200, {"token_type": "Bearer"}))

    with pytest.raises(TokenRequestError, match="No access_token in Avito response"):
        request_token({"grant_type": "client_credentials"})


@pytest.mark.unit
@patch("sync_avito.network.auth.client_credentials_grant")
@patch("sync_avito.network.auth.refresh_token_grant")
def test_acquire_token_uses_refresh_grant(mock_refresh: Mock, mock_cc: Mock) -> None:
    mock_refresh.return_value = _grant()

    grant = acquire_token("old-refresh")

    assert grant.access_token == "new-token"
    mock_refresh.assert_called_once_with("old-refresh")
    mock_cc.assert_not_called()


@pytest.mark.unit
@patch("sync_avito.network.auth.client_credentials_grant")
@patch("sync_avito.network.auth.refresh_token_grant")
def test_acquire_token_falls_back_to_client_credentials(mock_refresh: Mock, mock_cc: Mock) -> None:
    mock_refresh.side_effect = TokenRequestError("invalid refresh token", status_code=400)
    mock_cc.return_value = _grant("service-token", "client_credentials")

    grant = acquire_token("old-refresh")

    assert grant.access_token == "service-token"
    assert grant.grant_type == "client_credentials"


@pytest.mark.unit
@patch("sync_avito.network.auth.client_credentials_grant")
@patch("sync_avito.network.auth.refresh_token_grant")
def test_acquire_token_fails_when_both_grants_fail(mock_refresh: Mock, mock_cc: Mock) -> None:
    mock_refresh.side_effect = requests.ConnectionError("down")
    mock_cc.side_effect = TokenRequestError("unauthorized client", status_code=401)

    with pytest.raises(NoValidTokenError):
        acquire_token("old-refresh")


@pytest.mark.unit
@patch("sync_avito.network.auth.refresh_token_grant")
def test_acquire_token_without_refresh_token_fails(mock_refresh: Mock) -> None:
    with pytest.raises(NoValidTokenError):
        acquire_token(None)
    mock_refresh.assert_not_called()


@pytest.mark.unit
@patch("sync_avito.network.auth.acquire_token")
@patch("sync_avito.network.auth.get_token_state")
def test_get_valid_token_skips_refresh_when_ten_minutes_left(
    mock_state: Mock, mock_acquire: Mock
) -> None:
    """An expiry 10 minutes ahead is used as-is; no token call is made."""
    mock_state.return_value = _token_state(NOW + timedelta(minutes=10))

    token = get_valid_token(_mock_engine(), uuid4(), now=NOW)

    assert token == "old-token"
    mock_acquire.assert_not_called()


@pytest.mark.unit
@patch("sync_avito.network.auth.insert_sync_logs")
@patch("sync_avito.network.auth.update_integration_tokens")
@patch("sync_avito.network.auth.acquire_token")
@patch("sync_avito.network.auth.get_token_state")
def test_get_valid_token_refreshes_when_two_minutes_left(
    mock_state: Mock, mock_acquire: Mock, mock_update: Mock, mock_logs: Mock
) -> None:
    """An expiry 2 minutes ahead is refreshed and persisted before use."""
    previous_expiry = NOW + timedelta(minutes=2)
    mock_state.return_value = _token_state(previous_expiry)
    mock_acquire.return_value = _grant()
    mock_update.return_value = True
    integration_id = uuid4()

    token = get_valid_token(_mock_engine(), integration_id, now=NOW)

    assert token == "new-token"
    mock_acquire.assert_called_once_with("old-refresh")
    kwargs = mock_update.call_args.kwargs
    assert kwargs["previous_expires_at"] == previous_expiry
    assert kwargs["token_expires_at"] == NOW + timedelta(hours=1)
    assert kwargs["access_token_encrypted"] != "new-token"

    _, logged_integration, logged_property, entries = mock_logs.call_args.args
    assert logged_integration == integration_id
    assert logged_property == PROPERTY_ID
    assert [(e["action"], e["status"]) for e in entries] == [("refresh_token", "success")]
    assert entries[0]["details"]["grant_type"] == "refresh_token"


@pytest.mark.unit
@patch("sync_avito.network.auth.insert_sync_logs")
@patch("sync_avito.network.auth.update_integration_tokens")
@patch("sync_avito.network.auth.acquire_token")
@patch("sync_avito.network.auth.get_token_state")
def test_get_valid_token_cached_token_is_refreshed_inside_margin(
    mock_state: Mock, mock_acquire: Mock, mock_update: Mock, mock_logs: Mock
) -> None:
    """A token cached with 10 minutes left is not served once only 2 minutes remain."""
    mock_state.return_value = _token_state(NOW + timedelta(minutes=10))
    mock_acquire.return_value = _grant()
    mock_update.return_value = True
    integration_id = uuid4()
    engine = _mock_engine()

    first = get_valid_token(engine, integration_id, now=NOW)
    second = get_valid_token(engine, integration_id, now=NOW + timedelta(minutes=8))

    assert first == "old-token"
    assert second == "new-token"
    assert mock_acquire.call_count == 1


@pytest.mark.unit
@patch("sync_avito.network.auth.insert_sync_logs")
@patch("sync_avito.network.auth.update_integration_tokens")
@patch("sync_avito.network.auth.acquire_token")
@patch("sync_avito.network.auth.get_token_state")
def test_get_valid_token_audits_failed_refresh(
    mock_state: Mock, mock_acquire: Mock, mock_update: Mock, mock_logs: Mock
) -> None:
    mock_state.return_value = _token_state(NOW + timedelta(minutes=1))
    mock_acquire.side_effect = NoValidTokenError("reconnect the account")

    with pytest.raises(NoValidTokenError):
        get_valid_token(_mock_engine(), uuid4(), now=NOW)

    mock_update.assert_not_called()
    entries = mock_logs.call_args.args[3]
    assert entries == [
        {
            "action": "refresh_token",
            "status": "error",
            "error": "reconnect the account",
            "details": {"error_code": "NO_ACCESS_TOKEN"},
        }
    ]


@pytest.mark.unit
@patch("sync_avito.network.auth.update_integration_tokens")
@patch("sync_avito.network.auth.acquire_token")
@patch("sync_avito.network.auth.get_token_state")
def test_get_valid_token_uses_concurrently_stored_token(
    mock_state: Mock, mock_acquire: Mock, mock_update: Mock
) -> None:
    """When the conditional update loses the race, the stored token wins."""
    mock_state.side_effect = [
        _token_state(NOW + timedelta(minutes=1)),
        _token_state(NOW + timedelta(hours=2), access="winner-token", refresh="winner-refresh"),
    ]
    mock_acquire.return_value = _grant()
    mock_update.return_value = False

    token = get_valid_token(_mock_engine(), uuid4(), now=NOW)

    assert token == "winner-token"


@pytest.mark.unit
@patch("sync_avito.network.auth.insert_sync_logs")
@patch("sync_avito.network.auth.acquire_token")
@patch("sync_avito.network.auth.get_token_state")
def test_get_valid_token_expired_without_refresh_token_requires_reconnect(
    mock_state: Mock, mock_acquire: Mock, mock_logs: Mock
) -> None:
    mock_state.return_value = _token_state(NOW - timedelta(minutes=1), refresh=None)

    with pytest.raises(NoValidTokenError):
        get_valid_token(_mock_engine(), uuid4(), now=NOW)
    mock_acquire.assert_not_called()
    assert mock_logs.call_args.args[3][0]["status"] == "error"


@pytest.mark.unit
@patch("sync_avito.network.auth.get_token_state")
def test_get_valid_token_serves_cache_on_second_call(mock_state: Mock) -> None:
    mock_state.return_value = _token_state(NOW + timedelta(hours=1))
    integration_id = uuid4()
    engine = _mock_engine()

    get_valid_token(engine, integration_id, now=NOW)
    token = get_valid_token(engine, integration_id, now=NOW)

    assert token == "old-token"
    assert mock_state.call_count == 1


@pytest.mark.unit
@patch("sync_avito.network.auth.get_valid_token")
@patch("sync_avito.network.auth.get_expiring_integrations")
def test_refresh_expiring_tokens_reports_failures(mock_expiring: Mock, mock_get_token: Mock) -> None:
    ok_id, bad_id = uuid4(), uuid4()
    mock_expiring.return_value = [{"id": ok_id}, {"id": bad_id}]
    mock_get_token.side_effect = ["tok", NoValidTokenError("reconnect")]

    result = refresh_expiring_tokens(_mock_engine(), now=NOW)

    assert result["refreshed"] == 1
    assert result["failed"] == 1
    assert result["total"] == 2
    assert result["errors"] == [{"integration_id": str(bad_id), "error": "reconnect"}]
