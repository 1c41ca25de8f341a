"""
HTTP client for the Avito REST API.

Every outbound call, token endpoint included, goes through send_with_retry: HTTP 429
is retried up to MAX_ATTEMPTS times, waiting Retry-After seconds when the server
sends it and BASE_DELAY_SECONDS * 2**attempt otherwise. Any other status is
returned to the caller untouched.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import requests
import structlog

from sync_avito.config import AVITO_BASE_URL
from sync_avito.metrics import api_latency, api_requests, api_retries

logger = structlog.get_logger(__name__)

MAX_ATTEMPTS = 3
BASE_DELAY_SECONDS = 1.0
MAX_RETRY_AFTER_SECONDS = 60.0
REQUEST_TIMEOUT = 30


@dataclass
class ApiResult:
    """
    Outcome of one logical Avito call.

    Attributes:
        response: Last HTTP response received
        retries: Number of 429 retries performed
    """

    response: requests.Response
    retries: int = 0

    @property
    def status_code(self) -> int:
        return self.response.status_code

    @property
    def ok(self) -> bool:
        return 200 <= self.response.status_code < 300

    def json(self) -> Any:
        """Decoded body, or None when the body is empty or not JSON."""
        try:
            return self.response.json()
        except ValueError:
            return None

    def error(self) -> tuple[Optional[str], str, Any]:
        """
        Extract (error_code, message, details) from an Avito error body.

        Avito reports errors either as {"error": {"code", "message"}}, as flat
        {"code", "message"}, or, on the token endpoint, as OAuth
        {"error", "error_description"}.
        """
        body = self.json()
        code: Optional[str] = None
        message: Optional[str] = None
        if isinstance(body, dict):
            err = body.get("error")
            if isinstance(err, dict):
                code = _str_or_none(err.get("code"))
                message = _str_or_none(err.get("message"))
            elif isinstance(err, str):
                code = err
                message = _str_or_none(body.get("error_description"))
            message = _str_or_none(body.get("message")) or message
            code = code or _str_or_none(body.get("code"))
        if not message:
            message = self.response.text[:500] if self.response.text else f"HTTP {self.status_code}"
        return code, message, body


def _str_or_none(value: Any) -> Optional[str]:
    return str(value) if value not in (None, "") else None


def retry_delay(response: requests.Response, attempt: int) -> float:
    """
    Seconds to wait before retrying a rate-limited request.

    Args:
        response: The 429 response
        attempt: Zero-based index of the attempt that was rate limited

    Returns:
        Retry-After (capped) when present and numeric, else exponential backoff
    """
    header = response.headers.get("Retry-After")
    if header:
        try:
            return min(max(float(header), 0.0), MAX_RETRY_AFTER_SECONDS)
        except ValueError:
            pass
    return BASE_DELAY_SECONDS * (2**attempt)


def send_with_retry(
    method: str,
    url: str,
    endpoint: str,
    sleep: Optional[Callable[[float], None]] = None,
    **kwargs: Any,
) -> ApiResult:
    """
    Send a request, retrying only on HTTP 429.

    Args:
        method: HTTP method
        url: Absolute URL
        endpoint: Logical endpoint name for logs and metrics
        sleep: Sleep function (tests pass a mock)
        **kwargs: Passed through to requests.request

    Returns:
        ApiResult with the last response and the retry count

    Raises:
        requests.RequestException: On connection errors and timeouts (not retried)
    """
    sleep = sleep or time.sleep
    kwargs.setdefault("timeout", REQUEST_TIMEOUT)
    retries = 0

    while True:
        start_time = time.time()
        res = requests.request(method, url, **kwargs)
        api_requests.labels(endpoint=endpoint, status_code=str(res.status_code)).inc()
        api_latency.labels(endpoint=endpoint).observe(time.time() - start_time)

        if res.status_code != 429 or retries >= MAX_ATTEMPTS - 1:
            if res.status_code == 429:
                logger.warning("rate_limit_retries_exhausted", endpoint=endpoint, retries=retries)
            return ApiResult(response=res, retries=retries)

        delay = retry_delay(res, retries)
        logger.warning("rate_limited", endpoint=endpoint, attempt=retries + 1, delay=delay)
        api_retries.labels(endpoint=endpoint).inc()
        sleep(delay)
        retries += 1


class AvitoClient:
    """
    Bearer-authenticated client bound to one integration's credential.

    On HTTP 401 the client asks the refresh callback for a new token once and
    replays the request, mirroring an expired token mid-sync.

    Example:
        >>> client = AvitoClient(token, refresh=lambda: get_valid_token(engine, iid, force=True))
        >>> result = client.request("POST", "/realty/v1/items/123/base", "base_params", json={...})
    """

    def __init__(
        self,
        token: str,
        refresh: Optional[Callable[[], str]] = None,
        base_url: str = AVITO_BASE_URL,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.token = token
        self.refresh = refresh
        self.base_url = base_url.rstrip("/")
        self.sleep = sleep

    def request(
        self,
        method: str,
        path: str,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
    ) -> ApiResult:
        """
        Call an Avito API path.

        Args:
            method: HTTP method
            path: Path below the API base URL
            endpoint: Logical endpoint name for logs and metrics
            params: Query string parameters
            json: JSON body

        Returns:
            ApiResult of the (possibly replayed) call
        """
        url = f"{self.base_url}{path}"
        result = self._send(method, url, endpoint, params, json)

        if result.status_code == 401 and self.refresh is not None:
            logger.warning("unauthorized_refreshing_token", endpoint=endpoint)
            self.token = self.refresh()
            replay = self._send(method, url, endpoint, params, json)
            replay.retries += result.retries
            return replay

        return result

    def _send(
        self, method: str, url: str, endpoint: str, params: Optional[dict[str, Any]], json: Any
    ) -> ApiResult:
        return send_with_retry(
            method,
            url,
            endpoint,
            sleep=self.sleep,
            headers={"Authorization": f"Bearer {self.token}", "Accept": "application/json"},
            params=params,
            json=json,
        )
