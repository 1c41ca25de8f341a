from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class SyncRequest(BaseModel):
    """
    Trigger a reconciliation for one integration.
    """

    integration_id: UUID = Field(..., description="Integration to reconcile")
    exclude_booking_id: Optional[str] = Field(
        None,
        description="Local booking just deleted; its dates are reopened on Avito",
    )
    dry_run: Optional[bool] = Field(None, description="Override DRY_RUN setting")


class OperationError(BaseModel):
    """One failed (or warning-level) operation of a sync attempt."""

    model_config = ConfigDict(populate_by_name=True)

    operation: str
    status_code: int = Field(..., alias="statusCode")
    error_code: Optional[str] = Field(None, alias="errorCode")
    message: str
    details: Optional[Any] = None


class BookingCounts(BaseModel):
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0


class SyncResponse(BaseModel):
    """
    Structured result of a reconciliation attempt.

    success is true only when no operation failed; synced is true when the
    attempt ran through every step (possibly with operation-level failures).
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    synced: bool
    errors: Optional[list[OperationError]] = None
    warnings: Optional[list[OperationError]] = None
    bookings: Optional[BookingCounts] = None
    error_code: Optional[str] = Field(None, alias="errorCode")
    error_message: Optional[str] = Field(None, alias="errorMessage")
    requires_reconnect: Optional[bool] = Field(None, alias="requiresReconnect")


class TokenRefreshResponse(BaseModel):
    refreshed: int
    failed: int
    total: int
    errors: list[dict[str, str]] = Field(default_factory=list)
