"""
Shared fixtures for integration tests against a real PostgreSQL database.

DATABASE_URL must point at a disposable database; tables are created from the
ORM metadata and test rows are removed after each test.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Generator
from uuid import UUID

import pytest
from sqlalchemy import text

from sync_avito.config import SCHEMA
from sync_avito.crypto import encrypt_token
from sync_avito.db.engine import engine
from sync_avito.models.base import Base
from sync_avito.models.bookings import Booking  # noqa: F401
from sync_avito.models.integrations import Integration  # noqa: F401
from sync_avito.models.properties import Property, RateOverride  # noqa: F401
from sync_avito.models.sync_logs import SyncLog, SyncQueueItem  # noqa: F401
from sync_avito.utils.datetime import utc_now


@pytest.fixture(scope="session", autouse=True)
def database_schema() -> None:
    with engine.begin() as conn:
        conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {SCHEMA}"))
    Base.metadata.create_all(engine)


@pytest.fixture
def test_property() -> Generator[UUID, None, None]:
    """
    Create a property for writer tests.

    Returns the property id. Bookings, integrations and their rows cascade on cleanup.
    """
    with engine.begin() as conn:
        property_id = conn.execute(
            text(
                f"""
                INSERT INTO {SCHEMA}.properties (name, base_price, minimum_booking_days)
                VALUES ('Integration test flat', 4000, 2)
                RETURNING id
                """
            )
        ).scalar_one()

    yield property_id

    with engine.begin() as conn:
        conn.execute(text(f"DELETE FROM {SCHEMA}.properties WHERE id = :id"), {"id": property_id})


@pytest.fixture
def test_integration(test_property: UUID) -> Generator[tuple[UUID, UUID], None, None]:
    """
    Create an active Avito integration with a stored credential.

    Returns tuple of (integration_id, property_id).
    """
    with engine.begin() as conn:
        integration_id = conn.execute(
            text(
                f"""
                INSERT INTO {SCHEMA}.integrations (
                    property_id, platform, avito_account_id, avito_item_id,
                    access_token_encrypted, refresh_token_encrypted, token_expires_at
                )
                VALUES (:property_id, 'avito', '1234567', '2336174775', :access, :refresh, :expires)
                RETURNING id
                """
            ),
            {
                "property_id": test_property,
                "access": encrypt_token("stored-access"),
                "refresh": encrypt_token("stored-refresh"),
                "expires": utc_now() + timedelta(hours=12),
            },
        ).scalar_one()

    yield integration_id, test_property
