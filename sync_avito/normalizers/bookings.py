"""
Normalization of Avito booking payloads.

The bookings endpoint has returned several shapes over time: a bare list, or an
object wrapping the list under "bookings", "data" or "items". Guest contact data
may live in any of several nested objects depending on API version and booking
channel. All of that tolerance lives here; the rest of the code only sees
RemoteBooking.

Field lookup is driven by ordered tuples of extractor functions: the first one
returning a non-empty value wins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping, Optional

import structlog

from sync_avito.utils.datetime import parse_date

logger = structlog.get_logger(__name__)

PLACEHOLDER_GUEST_NAME = "Avito Guest"
DEFAULT_CURRENCY = "RUB"

CONTACT_CONTAINERS = ("customer", "contact", "booker", "renter", "profile", "guest", "user")

STATUS_MAP = {
    "active": "confirmed",
    "canceled": "cancelled",
    "pending": "pending",
}

Extractor = Callable[[Mapping[str, Any]], Optional[str]]


@dataclass(frozen=True)
class RemoteBooking:
    """A booking pulled from Avito, normalized to local field names."""

    avito_booking_id: int
    check_in: date
    check_out: date
    guest_name: str
    guest_phone: Optional[str] = None
    guest_email: Optional[str] = None
    total_price: Optional[Decimal] = None
    currency: str = DEFAULT_CURRENCY
    status: str = "confirmed"
    guests_count: int = 1


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def field(*path: str) -> Extractor:
    """Build an extractor reading a (possibly nested) key path."""

    def extract(raw: Mapping[str, Any]) -> Optional[str]:
        current: Any = raw
        for key in path:
            if not isinstance(current, Mapping):
                return None
            current = current.get(key)
        return _text(current)

    return extract


def full_name(container: Optional[str] = None) -> Extractor:
    """Build an extractor joining first_name and last_name of a container (or the top level)."""

    def extract(raw: Mapping[str, Any]) -> Optional[str]:
        source = raw.get(container) if container else raw
        if not isinstance(source, Mapping):
            return None
        parts = [_text(source.get("first_name")), _text(source.get("last_name"))]
        joined = " ".join(p for p in parts if p)
        return joined or None

    return extract


NAME_EXTRACTORS: tuple[Extractor, ...] = (
    field("customer", "name"),
    field("contact", "name"),
    field("booker", "name"),
    field("renter", "name"),
    field("profile", "name"),
    field("guest_name"),
    field("guest", "name"),
    field("user", "name"),
    field("name"),
    *(full_name(c) for c in CONTACT_CONTAINERS),
    full_name(),
)

PHONE_EXTRACTORS: tuple[Extractor, ...] = (
    *(field(c, key) for c in CONTACT_CONTAINERS for key in ("phone", "phone_number")),
    field("guest_phone"),
    field("phone"),
    field("phone_number"),
    field("contact_phone"),
)

EMAIL_EXTRACTORS: tuple[Extractor, ...] = (
    *(field(c, "email") for c in CONTACT_CONTAINERS),
    field("guest_email"),
    field("email"),
    field("contact_email"),
)


def first_match(raw: Mapping[str, Any], extractors: tuple[Extractor, ...]) -> Optional[str]:
    """Return the value of the first extractor that resolves, or None."""
    for extractor in extractors:
        value = extractor(raw)
        if value:
            return value
    return None


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize a Russian phone number to +7XXXXXXXXXX form.

    Formatting characters are dropped. A leading 8 or 7 becomes +7 and a number
    without a country prefix gets +7 prepended.

    Args:
        phone: Raw phone number as returned by Avito

    Returns:
        Normalized phone, or None when nothing usable remains

    Example:
        >>> normalize_phone("8 (912) 345-67-89")
        '+79123456789'
    """
    if not phone:
        return None
    cleaned = re.sub(r"[^\d+]", "", phone)
    if not cleaned:
        return None
    if cleaned.startswith("8") or cleaned.startswith("7"):
        return "+7" + cleaned[1:]
    if not cleaned.startswith("+"):
        return "+7" + cleaned
    return cleaned


def map_status(remote_status: Any) -> str:
    """Map an Avito booking status to the local one, defaulting to confirmed."""
    if not isinstance(remote_status, str):
        return "confirmed"
    return STATUS_MAP.get(remote_status.lower(), "confirmed")


def extract_booking_list(payload: Any) -> list[dict[str, Any]]:
    """
    Unwrap the list of bookings from any known response shape.

    Args:
        payload: Decoded JSON body of the bookings endpoint

    Returns:
        list[dict]: Raw booking objects (empty for unknown shapes)
    """
    if isinstance(payload, list):
        return [b for b in payload if isinstance(b, dict)]
    if isinstance(payload, dict):
        for key in ("bookings", "data", "items"):
            value = payload.get(key)
            if isinstance(value, list):
                return [b for b in value if isinstance(b, dict)]
    return []


def has_contact_data(raw: Mapping[str, Any]) -> bool:
    """True when any contact container or top-level contact field is present."""
    if any(isinstance(raw.get(c), Mapping) for c in CONTACT_CONTAINERS):
        return True
    return any(
        first_match(raw, extractors) for extractors in (PHONE_EXTRACTORS, EMAIL_EXTRACTORS)
    )


def merge_booking_details(raw: dict[str, Any], details: Mapping[str, Any]) -> dict[str, Any]:
    """
    Fill missing contact containers of a list entry from its details payload.

    Args:
        raw: Booking as returned by the list endpoint
        details: Booking as returned by the details endpoint (may be wrapped in "booking")

    Returns:
        dict: Copy of raw with contact data added
    """
    inner = details.get("booking") if isinstance(details.get("booking"), Mapping) else details
    merged = dict(raw)
    for key in (*CONTACT_CONTAINERS, "guest_name", "phone", "email", "name"):
        if merged.get(key) in (None, "", {}) and inner.get(key) not in (None, "", {}):
            merged[key] = inner[key]
    return merged


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _guest_count(raw: Mapping[str, Any]) -> int:
    for key in ("guest_count", "guests_count", "guests"):
        value = raw.get(key)
        if isinstance(value, int) and not isinstance(value, bool) and value > 0:
            return value
        if isinstance(value, str) and value.isdigit() and int(value) > 0:
            return int(value)
    return 1


def _booking_id(raw: Mapping[str, Any]) -> Optional[int]:
    for key in ("avito_booking_id", "id"):
        value = raw.get(key)
        if value is None or isinstance(value, bool):
            continue
        try:
            return int(value)
        except (TypeError, ValueError):
            continue
    return None


def normalize_remote_booking(raw: Mapping[str, Any]) -> Optional[RemoteBooking]:
    """
    Convert one raw Avito booking into a RemoteBooking.

    Args:
        raw: Booking object from the bookings endpoint

    Returns:
        RemoteBooking, or None when the id or either date is missing
    """
    booking_id = _booking_id(raw)
    check_in = parse_date(raw.get("check_in") or raw.get("date_start"))
    check_out = parse_date(raw.get("check_out") or raw.get("date_end"))
    if booking_id is None or check_in is None or check_out is None:
        logger.warning("skipping_incomplete_booking", avito_booking_id=booking_id)
        return None

    price = None
    for key in ("base_price", "total_price", "price"):
        price = _decimal(raw.get(key))
        if price is not None:
            break

    return RemoteBooking(
        avito_booking_id=booking_id,
        check_in=check_in,
        check_out=check_out,
        guest_name=first_match(raw, NAME_EXTRACTORS) or PLACEHOLDER_GUEST_NAME,
        guest_phone=normalize_phone(first_match(raw, PHONE_EXTRACTORS)),
        guest_email=first_match(raw, EMAIL_EXTRACTORS),
        total_price=price,
        currency=_text(raw.get("currency")) or DEFAULT_CURRENCY,
        status=map_status(raw.get("status")),
        guests_count=_guest_count(raw),
    )
