"""Exceptions raised across the Avito sync service."""


class SyncAvitoError(Exception):
    """Base class for errors raised by sync_avito."""


class IntegrationNotFoundError(SyncAvitoError):
    """The integration does not exist or is inactive."""


class NoValidTokenError(SyncAvitoError):
    """
    No usable Avito credential could be obtained.

    The integration must be reconnected through the OAuth flow.
    """

    error_code = "NO_ACCESS_TOKEN"


class TokenRequestError(SyncAvitoError):
    """A call to the Avito token endpoint failed."""

    def __init__(self, message: str, status_code: int | None = None, error_code: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class OAuthExchangeError(SyncAvitoError):
    """The authorization code could not be exchanged or the account could not be resolved."""

    def __init__(self, message: str, status_code: int = 400, error_code: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class InvalidStateError(SyncAvitoError):
    """The OAuth state blob is malformed or expired."""
