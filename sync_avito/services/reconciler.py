"""
Listing reconciler: brings one Avito listing in line with its local property.

Steps run sequentially: validate identifiers, obtain a token, push prices, push
base parameters, push closed dates, pull Avito bookings. Only a missing
integration (raised) or a missing credential (returned as a fatal outcome) stop
an attempt. Every other failure is recorded on the outcome and the next step
runs anyway.
"""

from __future__ import annotations

import re
import time
from datetime import date
from typing import Any, Callable, Optional
from uuid import UUID

import requests
import structlog
from sqlalchemy.engine import Engine

from sync_avito.db.readers.bookings import get_upcoming_bookings
from sync_avito.db.readers.integrations import get_integration
from sync_avito.db.readers.properties import get_property, get_rate_overrides
from sync_avito.db.writers.bookings import upsert_remote_bookings
from sync_avito.db.writers.integrations import update_last_sync
from sync_avito.db.writers.sync_logs import insert_sync_logs
from sync_avito.errors import IntegrationNotFoundError, NoValidTokenError
from sync_avito.metrics import sync_duration, syncs_total
from sync_avito.network.auth import get_valid_token
from sync_avito.network.client import AvitoClient
from sync_avito.pollers.bookings import poll_bookings
from sync_avito.pushers.occupancy import build_closed_intervals, push_occupancy
from sync_avito.pushers.prices import (
    project_price_intervals,
    push_base_params,
    push_prices,
    remote_price,
)
from sync_avito.services.outcome import OperationOutcome, SyncOutcome
from sync_avito.utils.datetime import today_utc

logger = structlog.get_logger(__name__)

ACCOUNT_ID_PATTERN = re.compile(r"^\d{6,8}$")
ITEM_ID_PATTERN = re.compile(r"^\d{10,12}$")


def validate_identifiers(account_id: Optional[str], item_id: Optional[str]) -> Optional[OperationOutcome]:
    """
    Check Avito identifiers before any remote call.

    Returns:
        A failed "validation" outcome, or None when both ids look valid
    """
    problems = []
    if not account_id or not ACCOUNT_ID_PATTERN.match(str(account_id)):
        problems.append("Avito account ID must be 6-8 digits; reconnect the account")
    if not item_id or not ITEM_ID_PATTERN.match(str(item_id)):
        problems.append("Avito listing ID must be 10-12 digits (for example 2336174775)")
    if not problems:
        return None
    return OperationOutcome(
        operation="validation",
        success=False,
        status_code=400,
        error_code="INVALID_IDENTIFIERS",
        message="; ".join(problems),
        details={"avito_account_id": account_id, "avito_item_id": item_id},
    )


def run_step(operation: str, step: Callable[[], Optional[OperationOutcome]]) -> Optional[OperationOutcome]:
    """
    Run one reconciliation step, turning transport failures into outcomes.

    Args:
        operation: Operation name used when the step itself cannot report one
        step: Callable performing the step

    Returns:
        The step's outcome, or a failed outcome on network or credential errors
    """
    try:
        return step()
    except requests.RequestException as e:
        logger.warning("step_network_error", operation=operation, error=str(e))
        return OperationOutcome.network_error(operation, e)
    except NoValidTokenError as e:
        return OperationOutcome(
            operation=operation,
            success=False,
            status_code=401,
            error_code=NoValidTokenError.error_code,
            message=str(e),
        )


def _audit_entries(outcome: SyncOutcome, exclusion_requested: bool) -> list[dict[str, Any]]:
    entries: list[dict[str, Any]] = []
    for op in outcome.operations:
        action = op.operation
        if op.operation in ("bookings_update", "open_all_dates"):
            if not exclusion_requested:
                action = "sync_calendar_bookings"
            elif op.operation == "open_all_dates":
                action = "open_all_dates_after_delete"
            else:
                action = "open_dates_after_delete"
        entries.append(
            {
                "action": action,
                "status": "success" if op.success else ("warning" if op.warning else "error"),
                "error": None if op.success else op.message,
                "details": {
                    "status_code": op.status_code,
                    "error_code": op.error_code,
                    "retries": op.retries,
                    "response": op.details,
                },
            }
        )
    if outcome.bookings is not None:
        entries.append({"action": "sync_bookings", "status": "success", "details": outcome.bookings})
    entries.append(_sync_entry(outcome))
    return entries


def _sync_entry(outcome: SyncOutcome) -> dict[str, Any]:
    return {
        "action": "sync",
        "status": "success" if outcome.success else "error",
        "error": outcome.to_response().error_message,
        "details": {
            "error_code": outcome.error_code,
            "errors": [op.to_error().model_dump(by_alias=True) for op in outcome.errors],
            "warnings": [op.to_error().model_dump(by_alias=True) for op in outcome.warnings],
        },
    }


def reconcile_integration(
    engine: Engine,
    integration_id: UUID,
    exclude_booking_id: Optional[str] = None,
    dry_run: bool = False,
    today: Optional[date] = None,
) -> SyncOutcome:
    """
    Reconcile one integration with Avito.

    Args:
        engine: SQLAlchemy engine
        integration_id: Integration to reconcile
        exclude_booking_id: Local booking just deleted; its dates are reopened
        dry_run: Skip local writes (bookings, last_sync_at, audit log); Avito is still called
        today: Override of the current date (tests)

    Returns:
        SyncOutcome describing every operation

    Raises:
        IntegrationNotFoundError: When the integration or its property does not exist
    """
    today = today or today_utc()
    start_time = time.time()
    log = logger.bind(integration_id=str(integration_id))

    with engine.connect() as conn:
        integration = get_integration(conn, integration_id)
        if integration is None:
            raise IntegrationNotFoundError(f"Integration {integration_id} not found or inactive")
        prop = get_property(conn, integration["property_id"])
        if prop is None:
            raise IntegrationNotFoundError(f"Property {integration['property_id']} not found")
        overrides = get_rate_overrides(conn, prop["id"], today)
        local_bookings = get_upcoming_bookings(conn, prop["id"], today)

    log.info("sync_started", exclude_booking_id=exclude_booking_id, dry_run=dry_run)
    outcome = SyncOutcome()
    account_id = integration["avito_account_id"]
    item_id = integration["avito_item_id"]

    invalid = validate_identifiers(account_id, item_id)
    if invalid is not None:
        outcome.add(invalid)
        outcome.http_status = 400
        outcome.error_code = invalid.error_code
        syncs_total.labels(status="failure").inc()
        log.warning("sync_rejected_invalid_identifiers", message=invalid.message)
        insert_sync_logs(
            engine, integration_id, prop["id"], _audit_entries(outcome, False), dry_run=dry_run
        )
        return outcome

    try:
        token = get_valid_token(engine, integration_id)
    except (NoValidTokenError, ValueError) as e:
        log.error("sync_aborted_no_token", error=str(e))
        outcome.add(
            OperationOutcome(
                operation="token",
                success=False,
                status_code=401,
                error_code=NoValidTokenError.error_code,
                message=str(e),
            )
        )
        outcome.http_status = 401
        outcome.error_code = NoValidTokenError.error_code
        outcome.error_message = str(e)
        outcome.requires_reconnect = True
        syncs_total.labels(status="failure").inc()
        # The refresh_token entry is written by get_valid_token.
        insert_sync_logs(engine, integration_id, prop["id"], [_sync_entry(outcome)], dry_run=dry_run)
        return outcome

    client = AvitoClient(token, refresh=lambda: get_valid_token(engine, integration_id, force=True))
    markup_type = integration["markup_type"] or "percent"
    markup_value = integration["markup_value"] or 0

    intervals = project_price_intervals(
        overrides,
        base_price=prop["base_price"],
        default_min_stay=prop["minimum_booking_days"],
        today=today,
        markup_type=markup_type,
        markup_value=markup_value,
    )
    outcome.add(run_step("price_update", lambda: push_prices(client, account_id, item_id, intervals)))

    outcome.add(
        run_step(
            "base_params_update",
            lambda: push_base_params(
                client,
                item_id,
                remote_price(prop["base_price"], markup_type, markup_value),
                prop["minimum_booking_days"] or 1,
            ),
        )
    )

    closed = build_closed_intervals(local_bookings, today, exclude_booking_id)
    outcome.add(
        run_step(
            "open_all_dates" if exclude_booking_id and not closed else "bookings_update",
            lambda: push_occupancy(
                client, account_id, item_id, closed, exclusion_requested=bool(exclude_booking_id)
            ),
        )
    )

    pulled: list[Any] = []

    def pull() -> OperationOutcome:
        bookings, fetch_outcome = poll_bookings(client, account_id, item_id, today)
        pulled.extend(bookings)
        return fetch_outcome

    fetch_outcome = run_step("bookings_fetch", pull)
    outcome.add(fetch_outcome)
    if fetch_outcome is not None and fetch_outcome.success:
        stats = upsert_remote_bookings(engine, prop["id"], pulled, dry_run=dry_run)
        outcome.bookings = stats.as_dict()
        if stats.errors:
            outcome.add(
                OperationOutcome(
                    operation="bookings_upsert",
                    success=False,
                    status_code=500,
                    message=f"{stats.errors} Avito bookings could not be saved",
                    details=stats.as_dict(),
                )
            )

    outcome.synced = True

    if not dry_run:
        with engine.begin() as conn:
            update_last_sync(conn, integration_id)
    insert_sync_logs(
        engine,
        integration_id,
        prop["id"],
        _audit_entries(outcome, bool(exclude_booking_id)),
        dry_run=dry_run,
    )

    sync_duration.observe(time.time() - start_time)
    syncs_total.labels(status="success" if outcome.success else "partial").inc()
    log.info(
        "sync_completed",
        success=outcome.success,
        errors=len(outcome.errors),
        warnings=len(outcome.warnings),
        bookings=outcome.bookings,
    )
    return outcome
