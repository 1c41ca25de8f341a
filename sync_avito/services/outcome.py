"""
Result values of a reconciliation attempt.

Independent Avito endpoints fail independently, so each step produces an
OperationOutcome and the attempt as a whole is a SyncOutcome carrying all of
them. Nothing here raises; callers render the lists.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from sync_avito.network.client import ApiResult
from sync_avito.schemas.sync import BookingCounts, OperationError, SyncResponse

NETWORK_ERROR_STATUS = 0


@dataclass
class OperationOutcome:
    """
    Result of one Avito operation.

    warning marks failures that do not make the attempt unsuccessful (e.g. base
    parameters missing while prices and dates were updated).
    """

    operation: str
    success: bool
    status_code: int = 200
    error_code: Optional[str] = None
    message: Optional[str] = None
    details: Any = None
    warning: bool = False
    retries: int = 0

    @classmethod
    def ok(cls, operation: str, result: Optional[ApiResult] = None, message: Optional[str] = None) -> OperationOutcome:
        return cls(
            operation=operation,
            success=True,
            status_code=result.status_code if result is not None else 200,
            message=message,
            retries=result.retries if result is not None else 0,
        )

    @classmethod
    def from_error(cls, operation: str, result: ApiResult, message: Optional[str] = None) -> OperationOutcome:
        """
        Build a failed outcome from an error response.

        Args:
            operation: Operation name
            result: Non-2xx API result
            message: User-facing message replacing the Avito one (the Avito
                message is still appended)
        """
        error_code, api_message, body = result.error()
        text = f"{message}: {api_message}" if message and api_message else (message or api_message)
        return cls(
            operation=operation,
            success=False,
            status_code=result.status_code,
            error_code=error_code,
            message=text,
            details=body,
            retries=result.retries,
        )

    @classmethod
    def network_error(cls, operation: str, error: Exception) -> OperationOutcome:
        return cls(
            operation=operation,
            success=False,
            status_code=NETWORK_ERROR_STATUS,
            error_code="NETWORK_ERROR",
            message=f"Network error: {error}",
        )

    def to_error(self) -> OperationError:
        return OperationError(
            operation=self.operation,
            status_code=self.status_code,
            error_code=self.error_code,
            message=self.message or "",
            details=self.details,
        )


@dataclass
class SyncOutcome:
    """Aggregated result of a reconciliation attempt."""

    operations: list[OperationOutcome] = field(default_factory=list)
    synced: bool = False
    http_status: int = 200
    bookings: Optional[dict[str, int]] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    requires_reconnect: bool = False

    def add(self, outcome: Optional[OperationOutcome]) -> None:
        if outcome is not None:
            self.operations.append(outcome)

    @property
    def errors(self) -> list[OperationOutcome]:
        return [op for op in self.operations if not op.success and not op.warning]

    @property
    def warnings(self) -> list[OperationOutcome]:
        return [op for op in self.operations if op.warning]

    @property
    def success(self) -> bool:
        return self.synced and not self.errors

    def to_response(self) -> SyncResponse:
        errors = self.errors
        warnings = self.warnings
        error_message = self.error_message
        if error_message is None and errors:
            error_message = "; ".join(op.message or op.operation for op in errors)
        return SyncResponse(
            success=self.success,
            synced=self.synced,
            errors=[op.to_error() for op in errors] or None,
            warnings=[op.to_error() for op in warnings] or None,
            bookings=BookingCounts(**self.bookings) if self.bookings is not None else None,
            error_code=self.error_code,
            error_message=error_message,
            requires_reconnect=self.requires_reconnect or None,
        )
