from datetime import date
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.engine import Connection


def get_property(conn: Connection, property_id: UUID) -> Optional[dict[str, Any]]:
    """
    Fetch the pricing defaults of a property.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        property_id (UUID): Property primary key.

    Returns:
        Optional[dict]: id, name, base_price, minimum_booking_days, currency
    """
    row = (
        conn.execute(
            text(
                """
                SELECT id, name, base_price, minimum_booking_days, currency
                FROM pms.properties
                WHERE id = :id
            """
            ),
            {"id": property_id},
        )
        .mappings()
        .fetchone()
    )
    return dict(row) if row else None


def get_rate_overrides(conn: Connection, property_id: UUID, from_date: date) -> list[dict[str, Any]]:
    """
    Fetch rate overrides on or after from_date, ordered by date.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        property_id (UUID): Property primary key.
        from_date (date): First date of the window (usually today).

    Returns:
        list[dict]: Rows with date, daily_price, min_stay.
    """
    result = conn.execute(
        text(
            """
            SELECT date, daily_price, min_stay
            FROM pms.property_rates
            WHERE property_id = :property_id AND date >= :from_date
            ORDER BY date
        """
        ),
        {"property_id": property_id, "from_date": from_date},
    )
    return [dict(row) for row in result.mappings()]
