"""
Unit tests for the OAuth callback and integration management endpoints.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Iterator
from unittest.mock import MagicMock, Mock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from sync_avito.cache import token_cache
from sync_avito.dependencies import get_db_engine
from sync_avito.errors import InvalidStateError, NoValidTokenError, OAuthExchangeError
from sync_avito.main import app
from sync_avito.services.integrations import ItemValidation
from sync_avito.services.oauth import OAuthResult
from sync_avito.utils.datetime import utc_now

ROUTES = "sync_avito.routes.integrations"
HELPERS = "sync_avito.routes._integration_helpers"


@pytest.fixture
def client() -> Iterator[TestClient]:
    app.dependency_overrides[get_db_engine] = lambda: MagicMock()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.mark.unit
@patch("sync_avito.routes.oauth.complete_oauth")
def test_oauth_callback_success(mock_complete: Mock, client: TestClient) -> None:
    result = OAuthResult(integration_id=uuid4(), property_id=uuid4(), account_id="1234567")
    mock_complete.return_value = result

    response = client.post("/avito/oauth/callback", json={"code": "abc", "state": "xyz"})

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "integrationId": str(result.integration_id),
        "propertyId": str(result.property_id),
        "accountId": "1234567",
    }


@pytest.mark.unit
@patch("sync_avito.routes.oauth.complete_oauth")
def test_oauth_callback_bad_state_is_400(mock_complete: Mock, client: TestClient) -> None:
    mock_complete.side_effect = InvalidStateError("OAuth state has expired")

    response = client.post("/avito/oauth/callback", json={"code": "abc", "state": "old"})

    assert response.status_code == 400
    assert "expired" in response.json()["detail"]


@pytest.mark.unit
@patch("sync_avito.routes.oauth.complete_oauth")
def test_oauth_callback_used_code(mock_complete: Mock, client: TestClient) -> None:
    mock_complete.side_effect = OAuthExchangeError(
        "code used", status_code=400, error_code="invalid_grant"
    )

    response = client.post("/avito/oauth/callback", json={"code": "abc", "state": "xyz"})

    assert response.status_code == 400
    assert response.json()["detail"] == {"error": "code used", "errorCode": "invalid_grant"}


@pytest.mark.unit
def test_oauth_callback_requires_code(client: TestClient) -> None:
    response = client.post("/avito/oauth/callback", json={"code": "", "state": "xyz"})

    assert response.status_code == 422


@pytest.mark.unit
@patch(f"{ROUTES}.save_listing_settings", return_value=True)
@patch(f"{HELPERS}.find_integration_by_item", return_value=None)
@patch(f"{HELPERS}.get_integration")
def test_update_integration_queues_sync(
    mock_get: Mock, mock_find: Mock, mock_save: Mock, client: TestClient
) -> None:
    integration_id = uuid4()
    mock_get.return_value = {"id": integration_id, "property_id": uuid4(), "avito_item_id": None}

    response = client.patch(
        f"/avito/integrations/{integration_id}",
        json={"avito_item_id": "2336174775", "markup_type": "fixed", "markup_value": "300"},
    )

    assert response.status_code == 200
    assert response.json()["syncQueued"] is True
    kwargs = mock_save.call_args.kwargs
    assert kwargs["avito_item_id"] == "2336174775"
    assert kwargs["markup_type"] == "fixed"


@pytest.mark.unit
@patch(f"{ROUTES}.save_listing_settings")
@patch(f"{HELPERS}.find_integration_by_item")
@patch(f"{HELPERS}.get_integration")
def test_update_integration_item_in_use_is_409(
    mock_get: Mock, mock_find: Mock, mock_save: Mock, client: TestClient
) -> None:
    mock_get.return_value = {"id": uuid4(), "property_id": uuid4(), "avito_item_id": None}
    mock_find.return_value = {"id": uuid4()}

    response = client.patch(f"/avito/integrations/{uuid4()}", json={"avito_item_id": "2336174775"})

    assert response.status_code == 409
    mock_save.assert_not_called()


@pytest.mark.unit
@patch(f"{HELPERS}.get_integration", return_value=None)
def test_update_missing_integration_is_404(mock_get: Mock, client: TestClient) -> None:
    response = client.patch(f"/avito/integrations/{uuid4()}", json={"markup_value": "5"})

    assert response.status_code == 404


@pytest.mark.unit
@pytest.mark.parametrize(
    "payload",
    [{"avito_item_id": "12345"}, {"avito_item_id": "abcdefghijk"}, {"markup_type": "ratio"}],
)
def test_update_integration_validates_payload(payload: dict, client: TestClient) -> None:
    response = client.patch(f"/avito/integrations/{uuid4()}", json=payload)

    assert response.status_code == 422


@pytest.mark.unit
def test_update_integration_without_fields(client: TestClient) -> None:
    response = client.patch(f"/avito/integrations/{uuid4()}", json={})

    assert response.status_code == 200
    assert response.json() == {"message": "No fields to update", "syncQueued": False}


@pytest.mark.unit
@patch(f"{ROUTES}.validate_item")
def test_validate_item_reports_availability(mock_validate: Mock, client: TestClient) -> None:
    mock_validate.return_value = ItemValidation(available=False, status_code=404, message="not found")

    response = client.post(
        f"/avito/integrations/{uuid4()}/validate-item", json={"avito_item_id": "2336174775"}
    )

    assert response.status_code == 200
    assert response.json() == {"available": False, "statusCode": 404, "message": "not found"}


@pytest.mark.unit
@patch(f"{ROUTES}.validate_item")
def test_validate_item_without_token_requires_reconnect(mock_validate: Mock, client: TestClient) -> None:
    mock_validate.side_effect = NoValidTokenError("reconnect")

    response = client.post(
        f"/avito/integrations/{uuid4()}/validate-item", json={"avito_item_id": "2336174775"}
    )

    assert response.status_code == 401
    assert response.json()["detail"]["requiresReconnect"] is True


@pytest.mark.unit
@patch(f"{ROUTES}.hard_delete_integration")
@patch(f"{ROUTES}.soft_delete_integration")
@patch(f"{HELPERS}.integration_exists", return_value=True)
def test_delete_integration_soft_by_default(
    mock_exists: Mock, mock_soft: Mock, mock_hard: Mock, client: TestClient
) -> None:
    integration_id = uuid4()
    token_cache.set(integration_id, "cached", utc_now() + timedelta(hours=1))

    response = client.delete(f"/avito/integrations/{integration_id}")

    assert response.status_code == 200
    assert "deactivated" in response.json()["message"]
    mock_soft.assert_called_once()
    mock_hard.assert_not_called()
    assert token_cache.get(integration_id) is None


@pytest.mark.unit
@patch(f"{ROUTES}.hard_delete_integration")
@patch(f"{ROUTES}.soft_delete_integration")
@patch(f"{HELPERS}.integration_exists", return_value=True)
def test_delete_integration_hard(
    mock_exists: Mock, mock_soft: Mock, mock_hard: Mock, client: TestClient
) -> None:
    response = client.delete(f"/avito/integrations/{uuid4()}?soft=false")

    assert response.status_code == 200
    assert "permanently deleted" in response.json()["message"]
    mock_hard.assert_called_once()
    mock_soft.assert_not_called()


@pytest.mark.unit
@patch(f"{HELPERS}.integration_exists", return_value=False)
def test_delete_missing_integration_is_404(mock_exists: Mock, client: TestClient) -> None:
    response = client.delete(f"/avito/integrations/{uuid4()}")

    assert response.status_code == 404
