"""
In-memory access token cache.

Avito access tokens carry their own expiry, so each cached entry expires a fixed
buffer before the token itself. The cache only saves a database round trip and a
decrypt; the integrations table remains the source of truth, so every process
of a multi-instance deployment can keep its own copy.
"""

from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sync_avito.utils.datetime import utc_now


class TokenCache:
    """
    Token cache keyed by integration id.

    Attributes:
        buffer: Entries are treated as expired this long before the token expiry
        _cache: Internal storage mapping integration_id to (token, usable_until)

    Example:
        >>> cache = TokenCache(buffer_seconds=60)
        >>> cache.set(integration_id, "token-abc", expires_at)
        >>> cache.get(integration_id)
        'token-abc'
    """

    def __init__(self, buffer_seconds: int = 60):
        self.buffer = timedelta(seconds=buffer_seconds)
        self._cache: dict[UUID, tuple[str, datetime]] = {}

    def get(self, integration_id: UUID, now: Optional[datetime] = None) -> Optional[str]:
        """
        Get a cached token if it is still usable.

        Args:
            integration_id: Integration primary key
            now: Override for the current time (tests)

        Returns:
            Cached token, or None when missing or about to expire
        """
        entry = self._cache.get(integration_id)
        if entry is None:
            return None
        token, usable_until = entry
        if (now or utc_now()) < usable_until:
            return token
        del self._cache[integration_id]
        return None

    def set(self, integration_id: UUID, token: str, expires_at: datetime) -> None:
        """
        Cache a token until shortly before it expires.

        Args:
            integration_id: Integration primary key
            token: Plaintext access token
            expires_at: Token expiry as reported by Avito
        """
        self._cache[integration_id] = (token, expires_at - self.buffer)

    def invalidate(self, integration_id: UUID) -> None:
        """Remove a single entry, e.g. after a 401 or a refresh."""
        self._cache.pop(integration_id, None)

    def clear(self) -> None:
        self._cache.clear()

    def size(self) -> int:
        return len(self._cache)


# Entries lapse once a token enters the refresh margin.
REFRESH_MARGIN = timedelta(minutes=5)

token_cache = TokenCache(buffer_seconds=int(REFRESH_MARGIN.total_seconds()))
