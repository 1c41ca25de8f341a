from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.engine import Connection


def get_upcoming_bookings(conn: Connection, property_id: UUID, from_date: date) -> list[dict[str, Any]]:
    """
    Fetch bookings of a property checking in on or after from_date.

    Status filtering is left to the caller so the same rows can feed both the
    occupancy pusher and diagnostics.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        property_id (UUID): Property primary key.
        from_date (date): Earliest check-in date.

    Returns:
        list[dict]: Rows with id, check_in, check_out, status, avito_booking_id.
    """
    result = conn.execute(
        text(
            """
            SELECT id, check_in, check_out, status, avito_booking_id
            FROM pms.bookings
            WHERE property_id = :property_id AND check_in >= :from_date
            ORDER BY check_in
        """
        ),
        {"property_id": property_id, "from_date": from_date},
    )
    return [dict(row) for row in result.mappings()]
