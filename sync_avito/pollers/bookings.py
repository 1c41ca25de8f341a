import json
from datetime import date, timedelta
from typing import Any, Optional

import structlog

from sync_avito.config import DEBUG
from sync_avito.network.client import AvitoClient
from sync_avito.normalizers.bookings import (
    RemoteBooking,
    extract_booking_list,
    has_contact_data,
    merge_booking_details,
    normalize_remote_booking,
)
from sync_avito.pushers.prices import LISTING_NOT_FOUND_MESSAGE
from sync_avito.services.outcome import OperationOutcome

logger = structlog.get_logger(__name__)

PULL_WINDOW_DAYS = 365


def _bookings_path(account_id: str, item_id: str) -> str:
    return f"/realty/v1/accounts/{account_id}/items/{item_id}/bookings"


def fetch_booking_details(
    client: AvitoClient, account_id: str, item_id: str, booking_id: Any
) -> Optional[dict[str, Any]]:
    """
    Fetch a single booking with its contact data.

    Args:
        client: Authenticated Avito client
        account_id: Avito user id
        item_id: Avito listing id
        booking_id: Avito booking id

    Returns:
        Optional[dict]: Booking details, or None if the request failed
    """
    result = client.request(
        "GET",
        f"{_bookings_path(account_id, item_id)}/{booking_id}",
        endpoint="booking_details",
    )
    body = result.json()
    if not result.ok or not isinstance(body, dict):
        logger.warning("booking_details_unavailable", booking_id=booking_id, status_code=result.status_code)
        return None
    return body


def poll_bookings(
    client: AvitoClient,
    account_id: str,
    item_id: str,
    today: date,
) -> tuple[list[RemoteBooking], OperationOutcome]:
    """
    Fetch Avito bookings of a listing for [today, today + 365 days].

    Unpaid bookings are included. Entries without contact data are completed from
    the booking details endpoint. Entries missing an id or dates are skipped.

    Args:
        client: Authenticated Avito client
        account_id: Avito user id
        item_id: Avito listing id
        today: Start of the window

    Returns:
        tuple: Normalized bookings and the "bookings_fetch" outcome
    """
    params: dict[str, Any] = {
        "date_start": today.isoformat(),
        "date_end": (today + timedelta(days=PULL_WINDOW_DAYS)).isoformat(),
        "with_unpaid": "true",
        "skip_error": "true",
    }
    result = client.request(
        "GET", _bookings_path(account_id, item_id), endpoint="bookings_fetch", params=params
    )

    raw_bookings: list[dict[str, Any]] = []
    if result.status_code == 409:
        logger.info("bookings_fetch_conflict_treated_as_empty", item_id=item_id)
    elif result.status_code == 404:
        return [], OperationOutcome.from_error("bookings_fetch", result, LISTING_NOT_FOUND_MESSAGE)
    elif not result.ok:
        logger.warning("bookings_fetch_failed", item_id=item_id, status_code=result.status_code)
        return [], OperationOutcome.from_error("bookings_fetch", result)
    else:
        raw_bookings = extract_booking_list(result.json())

    if DEBUG and raw_bookings:
        logger.debug("sample_avito_booking", booking=json.dumps(raw_bookings[0], indent=2, default=str))

    bookings: list[RemoteBooking] = []
    for raw in raw_bookings:
        if not has_contact_data(raw):
            booking_id = raw.get("avito_booking_id") or raw.get("id")
            details = fetch_booking_details(client, account_id, item_id, booking_id) if booking_id else None
            if details:
                raw = merge_booking_details(raw, details)
        booking = normalize_remote_booking(raw)
        if booking is not None:
            bookings.append(booking)

    logger.info("bookings_fetched", item_id=item_id, received=len(raw_bookings), valid=len(bookings))
    outcome = OperationOutcome(
        operation="bookings_fetch", success=True, status_code=result.status_code, retries=result.retries
    )
    return bookings, outcome
