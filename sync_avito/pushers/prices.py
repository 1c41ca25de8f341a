"""
Projection of local prices onto Avito price intervals.

Avito takes prices as inclusive [date_from, date_to] runs with a single nightly
price and minimum stay. Local rate overrides are per date, so they are
coalesced: sorted by date and scanned once, a run grows while the next date is
the following calendar day and carries the same (price, minimum stay).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping, Optional

import structlog

from sync_avito.network.client import AvitoClient
from sync_avito.services.outcome import OperationOutcome

logger = structlog.get_logger(__name__)

DEFAULT_WINDOW_DAYS = 90
LISTING_NOT_FOUND_MESSAGE = (
    "Listing not found in Avito. Check the listing ID (a long number such as 2336174775)"
)
BASE_PARAMS_NOT_FOUND_MESSAGE = "Calendar and prices updated, base parameters not found in Avito"


@dataclass(frozen=True)
class PriceInterval:
    date_from: date
    date_to: date  # inclusive
    night_price: int
    minimal_duration: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "date_from": self.date_from.isoformat(),
            "date_to": self.date_to.isoformat(),
            "night_price": self.night_price,
            "minimal_duration": self.minimal_duration,
        }


def remote_price(local_price: Any, markup_type: str = "percent", markup_value: Any = 0) -> int:
    """
    Apply an integration's markup to a local nightly price.

    Args:
        local_price: Local price (Decimal, int, float or numeric string)
        markup_type: "percent" or "fixed"
        markup_value: Percent or flat amount, may be negative

    Returns:
        int: Price rounded half-up, never below 1
    """
    price = Decimal(str(local_price))
    markup = Decimal(str(markup_value or 0))
    if markup_type == "fixed":
        value = price + markup
    else:
        value = price * (1 + markup / 100)
    rounded = int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return max(1, rounded)


def project_price_intervals(
    overrides: Iterable[Mapping[str, Any]],
    base_price: Any,
    default_min_stay: Optional[int],
    today: date,
    markup_type: str = "percent",
    markup_value: Any = 0,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> list[PriceInterval]:
    """
    Coalesce rate overrides into the minimal list of uniform intervals.

    Args:
        overrides: Rows with date, daily_price and optional min_stay
        base_price: Property base price, used when there are no overrides
        default_min_stay: Property minimum stay, used when an override has none
        today: First date of the window; earlier overrides are ignored
        markup_type: Integration markup type
        markup_value: Integration markup value
        window_days: Length of the synthetic run when there are no overrides

    Returns:
        list[PriceInterval]: Ordered, non-overlapping intervals
    """
    min_stay_default = default_min_stay or 1
    rows = sorted((o for o in overrides if o["date"] >= today), key=lambda o: o["date"])

    if not rows:
        return [
            PriceInterval(
                date_from=today,
                date_to=today + timedelta(days=window_days),
                night_price=remote_price(base_price, markup_type, markup_value),
                minimal_duration=min_stay_default,
            )
        ]

    intervals: list[PriceInterval] = []
    current: Optional[PriceInterval] = None
    for row in rows:
        price = remote_price(row["daily_price"], markup_type, markup_value)
        min_stay = row.get("min_stay") or min_stay_default
        if (
            current is not None
            and current.night_price == price
            and current.minimal_duration == min_stay
            and row["date"] == current.date_to + timedelta(days=1)
        ):
            current = PriceInterval(current.date_from, row["date"], price, min_stay)
            continue
        if current is not None:
            intervals.append(current)
        current = PriceInterval(row["date"], row["date"], price, min_stay)

    if current is not None:
        intervals.append(current)
    return intervals


def push_prices(
    client: AvitoClient, account_id: str, item_id: str, intervals: list[PriceInterval]
) -> OperationOutcome:
    """
    Send all price intervals in one request.

    Args:
        client: Authenticated Avito client
        account_id: Avito user id
        item_id: Avito listing id
        intervals: Output of project_price_intervals

    Returns:
        OperationOutcome for "price_update"
    """
    result = client.request(
        "POST",
        f"/realty/v1/accounts/{account_id}/items/{item_id}/prices",
        endpoint="prices",
        params={"skip_error": "true"},
        json={"prices": [i.to_payload() for i in intervals]},
    )
    if result.ok:
        logger.info("prices_pushed", item_id=item_id, intervals=len(intervals))
        return OperationOutcome.ok("price_update", result)
    if result.status_code == 404:
        return OperationOutcome.from_error("price_update", result, LISTING_NOT_FOUND_MESSAGE)
    logger.warning("price_push_failed", item_id=item_id, status_code=result.status_code)
    return OperationOutcome.from_error("price_update", result)


def push_base_params(
    client: AvitoClient, item_id: str, night_price: int, minimal_duration: int
) -> OperationOutcome:
    """
    Update the listing's base nightly price and minimum stay.

    A 404 is reported as a warning: the listing may still accept prices and
    bookings when its base parameters object does not exist.
    """
    result = client.request(
        "POST",
        f"/realty/v1/items/{item_id}/base",
        endpoint="base_params",
        json={"night_price": night_price, "minimal_duration": minimal_duration},
    )
    if result.ok:
        return OperationOutcome.ok("base_params_update", result)
    outcome = OperationOutcome.from_error("base_params_update", result)
    if result.status_code == 404:
        outcome.warning = True
        outcome.message = BASE_PARAMS_NOT_FOUND_MESSAGE
        logger.warning("base_params_not_found", item_id=item_id)
    return outcome
