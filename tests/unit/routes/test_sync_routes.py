"""
Unit tests for POST /avito/sync and POST /avito/tokens/refresh.
"""

from __future__ import annotations

from typing import Iterator
from unittest.mock import MagicMock, Mock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from sync_avito.dependencies import get_db_engine
from sync_avito.errors import IntegrationNotFoundError
from sync_avito.main import app
from sync_avito.services.outcome import OperationOutcome, SyncOutcome


@pytest.fixture
def client() -> Iterator[TestClient]:
    app.dependency_overrides[get_db_engine] = lambda: MagicMock()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.mark.unit
@patch("sync_avito.routes.sync.reconcile_integration")
def test_sync_returns_structured_success(mock_reconcile: Mock, client: TestClient) -> None:
    mock_reconcile.return_value = SyncOutcome(
        operations=[OperationOutcome(operation="price_update", success=True)],
        synced=True,
        bookings={"created": 2, "updated": 1, "skipped": 0, "errors": 0},
    )
    integration_id = uuid4()

    response = client.post("/avito/sync", json={"integration_id": str(integration_id)})

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "synced": True,
        "bookings": {"created": 2, "updated": 1, "skipped": 0, "errors": 0},
    }
    assert mock_reconcile.call_args.args[1] == integration_id
    assert mock_reconcile.call_args.kwargs["exclude_booking_id"] is None


@pytest.mark.unit
@patch("sync_avito.routes.sync.reconcile_integration")
def test_sync_partial_failure_is_200_with_errors(mock_reconcile: Mock, client: TestClient) -> None:
    mock_reconcile.return_value = SyncOutcome(
        operations=[
            OperationOutcome(
                operation="price_update",
                success=False,
                status_code=404,
                error_code="404",
                message="Listing not found in Avito",
            ),
            OperationOutcome(
                operation="base_params_update",
                success=False,
                status_code=404,
                message="base parameters not found",
                warning=True,
            ),
        ],
        synced=True,
    )

    response = client.post(
        "/avito/sync", json={"integration_id": str(uuid4()), "exclude_booking_id": "b-1"}
    )

    body = response.json()
    assert response.status_code == 200
    assert body["success"] is False
    assert body["synced"] is True
    assert body["errors"] == [
        {
            "operation": "price_update",
            "statusCode": 404,
            "errorCode": "404",
            "message": "Listing not found in Avito",
        }
    ]
    assert body["warnings"][0]["operation"] == "base_params_update"
    assert body["errorMessage"] == "Listing not found in Avito"
    assert mock_reconcile.call_args.kwargs["exclude_booking_id"] == "b-1"


@pytest.mark.unit
@patch("sync_avito.routes.sync.reconcile_integration")
def test_sync_missing_token_returns_401(mock_reconcile: Mock, client: TestClient) -> None:
    mock_reconcile.return_value = SyncOutcome(
        http_status=401,
        error_code="NO_ACCESS_TOKEN",
        error_message="reconnect",
        requires_reconnect=True,
    )

    response = client.post("/avito/sync", json={"integration_id": str(uuid4())})

    assert response.status_code == 401
    body = response.json()
    assert body["requiresReconnect"] is True
    assert body["errorCode"] == "NO_ACCESS_TOKEN"
    assert body["success"] is False


@pytest.mark.unit
@patch("sync_avito.routes.sync.reconcile_integration")
def test_sync_unknown_integration_returns_404(mock_reconcile: Mock, client: TestClient) -> None:
    mock_reconcile.side_effect = IntegrationNotFoundError("Integration not found or inactive")

    response = client.post("/avito/sync", json={"integration_id": str(uuid4())})

    assert response.status_code == 404


@pytest.mark.unit
def test_sync_rejects_invalid_integration_id(client: TestClient) -> None:
    response = client.post("/avito/sync", json={"integration_id": "not-a-uuid"})

    assert response.status_code == 422


@pytest.mark.unit
@patch("sync_avito.routes.sync.reconcile_integration")
def test_sync_dry_run_flag_is_forwarded(mock_reconcile: Mock, client: TestClient) -> None:
    mock_reconcile.return_value = SyncOutcome(synced=True)

    client.post("/avito/sync", json={"integration_id": str(uuid4()), "dry_run": True})

    assert mock_reconcile.call_args.kwargs["dry_run"] is True


@pytest.mark.unit
@patch("sync_avito.routes.sync.refresh_expiring_tokens")
def test_refresh_tokens_reports_counts(mock_refresh: Mock, client: TestClient) -> None:
    mock_refresh.return_value = {
        "refreshed": 2,
        "failed": 1,
        "total": 3,
        "errors": [{"integration_id": "x", "error": "reconnect"}],
    }

    response = client.post("/avito/tokens/refresh")

    assert response.status_code == 200
    assert response.json()["refreshed"] == 2
    assert response.json()["errors"] == [{"integration_id": "x", "error": "reconnect"}]
