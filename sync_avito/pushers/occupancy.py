"""Push of locally occupied dates to the Avito calendar."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Mapping, Optional

import structlog

from sync_avito.config import CALENDAR_SOURCE
from sync_avito.network.client import AvitoClient
from sync_avito.services.outcome import OperationOutcome

logger = structlog.get_logger(__name__)

PAID_BOOKING_CONFLICT_MESSAGE = "Conflict with a paid booking in Avito, check the calendar manually"
DATES_NOT_UPDATED_MESSAGE = "Dates in Avito were not updated (404)"


@dataclass(frozen=True)
class ClosedInterval:
    """Occupied half-open range [date_start, date_end) for one local booking."""

    date_start: date
    date_end: date
    booking_id: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "date_start": self.date_start.isoformat(),
            "date_end": self.date_end.isoformat(),
            "type": "booking",
        }


def build_closed_intervals(
    bookings: Iterable[Mapping[str, Any]],
    today: date,
    exclude_booking_id: Optional[str] = None,
) -> list[ClosedInterval]:
    """
    Map confirmed upcoming bookings to closed intervals.

    Args:
        bookings: Rows with id, check_in, check_out, status
        today: Bookings checking in before today are ignored
        exclude_booking_id: Booking to leave out (just deleted locally)

    Returns:
        list[ClosedInterval]: Sorted by date_start
    """
    excluded = str(exclude_booking_id) if exclude_booking_id else None
    intervals = [
        ClosedInterval(b["check_in"], b["check_out"], str(b["id"]))
        for b in bookings
        if b.get("status") == "confirmed"
        and b["check_in"] >= today
        and str(b["id"]) != excluded
    ]
    return sorted(intervals, key=lambda i: (i.date_start, i.date_end))


def push_occupancy(
    client: AvitoClient,
    account_id: str,
    item_id: str,
    intervals: list[ClosedInterval],
    exclusion_requested: bool = False,
) -> Optional[OperationOutcome]:
    """
    Replace the listing's closed dates with the given intervals.

    Args:
        client: Authenticated Avito client
        account_id: Avito user id
        item_id: Avito listing id
        intervals: Output of build_closed_intervals
        exclusion_requested: A booking was excluded to reopen its dates

    Returns:
        OperationOutcome, or None when nothing had to be sent
    """
    if not intervals and not exclusion_requested:
        logger.info("occupancy_push_skipped", item_id=item_id)
        return None

    operation = "bookings_update" if intervals else "open_all_dates"
    result = client.request(
        "POST",
        f"/core/v1/accounts/{account_id}/items/{item_id}/bookings",
        endpoint="bookings_update",
        json={"bookings": [i.to_payload() for i in intervals], "source": CALENDAR_SOURCE},
    )

    if result.ok:
        logger.info("occupancy_pushed", item_id=item_id, intervals=len(intervals), operation=operation)
        return OperationOutcome.ok(operation, result)

    if result.status_code == 409:
        if exclusion_requested:
            return OperationOutcome.from_error(operation, result, PAID_BOOKING_CONFLICT_MESSAGE)
        logger.info("occupancy_conflict_ignored", item_id=item_id)
        return OperationOutcome(
            operation=operation,
            success=True,
            status_code=409,
            message="Conflict with an existing Avito booking",
            retries=result.retries,
        )

    if result.status_code == 404:
        return OperationOutcome.from_error(operation, result, DATES_NOT_UPDATED_MESSAGE)

    return OperationOutcome.from_error(operation, result)
