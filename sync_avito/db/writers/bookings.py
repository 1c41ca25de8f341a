"""
Upsert of Avito bookings into the local bookings table.

Each remote booking is written with its own INSERT ... ON CONFLICT
(avito_booking_id) DO UPDATE inside a savepoint so one bad row does not roll
back the rest. The update only fires when a field is actually different
(IS DISTINCT FROM), and RETURNING (xmax = 0) tells inserts from updates, so an
unchanged row returns nothing and counts as skipped.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import literal_column, or_
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from sync_avito.config import DEBUG
from sync_avito.metrics import bookings_upserted
from sync_avito.models.bookings import Booking
from sync_avito.normalizers.bookings import RemoteBooking
from sync_avito.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

UPDATE_COLUMNS = [
    "guest_name",
    "guest_phone",
    "guest_email",
    "check_in",
    "check_out",
    "total_price",
    "currency",
    "status",
    "guests_count",
]


@dataclass
class BookingUpsertStats:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def _booking_row(property_id: UUID, booking: RemoteBooking) -> dict[str, Any]:
    now = utc_now()
    return {
        "property_id": property_id,
        "avito_booking_id": booking.avito_booking_id,
        "guest_name": booking.guest_name,
        "guest_phone": booking.guest_phone,
        "guest_email": booking.guest_email,
        "check_in": booking.check_in,
        "check_out": booking.check_out,
        "total_price": booking.total_price,
        "currency": booking.currency,
        "status": booking.status,
        "guests_count": booking.guests_count,
        "source": "avito",
        "created_at": now,
        "updated_at": now,
    }


def build_booking_upsert(row: dict[str, Any]) -> Any:
    """
    Build the upsert statement for one booking row.

    Args:
        row: Column values for the bookings table

    Returns:
        Insert statement returning a single boolean "inserted" column
    """
    stmt = insert(Booking).values(row)
    stmt = stmt.on_conflict_do_update(
        index_elements=["avito_booking_id"],
        set_={
            **{col: getattr(stmt.excluded, col) for col in UPDATE_COLUMNS},
            "updated_at": stmt.excluded.updated_at,
        },
        where=or_(
            *[
                getattr(Booking, col).is_distinct_from(getattr(stmt.excluded, col))
                for col in UPDATE_COLUMNS
            ]
        ),
    )
    return stmt.returning(literal_column("(xmax = 0)").label("inserted"))


def upsert_remote_bookings(
    engine: Engine,
    property_id: UUID,
    bookings: list[RemoteBooking],
    dry_run: bool = False,
) -> BookingUpsertStats:
    """
    Insert or update Avito bookings for a property.

    Args:
        engine (Engine): SQLAlchemy engine to open a transaction.
        property_id (UUID): Property the bookings belong to.
        bookings (list[RemoteBooking]): Normalized remote bookings.
        dry_run (bool): If True, skip DB writes and count every booking as skipped.

    Returns:
        BookingUpsertStats: created / updated / skipped / errors counters.
    """
    stats = BookingUpsertStats()
    if not bookings:
        return stats

    if dry_run:
        logger.info("dry_run_skip_bookings", property_id=str(property_id), count=len(bookings))
        stats.skipped = len(bookings)
        return stats

    rows = [_booking_row(property_id, b) for b in bookings]
    if DEBUG:
        logger.debug("sample_booking_row", row=json.dumps(rows[0], default=str, indent=2))

    with engine.begin() as conn:
        for row in rows:
            try:
                with conn.begin_nested():
                    inserted = conn.execute(build_booking_upsert(row)).scalar_one_or_none()
            except SQLAlchemyError:
                logger.exception(
                    "booking_upsert_failed", avito_booking_id=row["avito_booking_id"]
                )
                stats.errors += 1
                continue

            if inserted is None:
                stats.skipped += 1
            elif inserted:
                stats.created += 1
            else:
                stats.updated += 1

    for result, count in stats.as_dict().items():
        if count:
            bookings_upserted.labels(result=result).inc(count)

    logger.info("bookings_upserted", property_id=str(property_id), **stats.as_dict())
    return stats
