from __future__ import annotations

import functools
import logging
import time
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Callable

import requests
from urllib3.exceptions import NewConnectionError

from gee_analysis.models import RequestResult
from gee_analysis.observability import record_api_request, record_api_retry
from gee_analysis.settings import Settings, get_settings

logger = logging.getLogger("gee.transport")

GENERIC_ERROR = "Network error"
TIMEOUT_STATUS_TEXT = "timeout"
INVALID_JSON_ERROR = "Invalid JSON response"
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
# Statuses meaning the backend refused the call before doing any work.
UNPROCESSED_STATUS_CODES = frozenset({429, 503})
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

SendFunc = Callable[..., RequestResult]
RetryHook = Callable[["TransientRequestError", int, float], None]


class TransientRequestError(Exception):
    """Raised by a single send when the failure is worth another attempt."""

    def __init__(self, result: RequestResult, *, method: str, endpoint: str):
        super().__init__(result.error)
        self.result = result
        self.method = method
        self.endpoint = endpoint


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded attempts with exponential backoff between them.

    Methods outside retry_methods are only repeated when the request provably
    never reached the backend: a failed connect, or a 429/503 refusal.
    """

    max_attempts: int = 1
    initial_delay: float = 1.0
    backoff_factor: float = 2.0
    max_delay: float = 30.0
    retry_methods: frozenset[str] = IDEMPOTENT_METHODS

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.gee_api_retries + 1,
            initial_delay=settings.gee_api_backoff_seconds,
            backoff_factor=settings.gee_api_backoff_factor,
            max_delay=settings.gee_api_max_backoff_seconds,
        )

    def retries_method(self, method: str) -> bool:
        return method.upper() in self.retry_methods

    def delays(self) -> Iterator[float]:
        """Yield the pause before each retry; one fewer than max_attempts."""
        delay = max(0.0, float(self.initial_delay))
        for _ in range(max(1, int(self.max_attempts)) - 1):
            yield min(delay, self.max_delay)
            delay *= max(1.0, float(self.backoff_factor))


def retrying(
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    on_retry: RetryHook | None = None,
) -> Callable[[SendFunc], SendFunc]:
    """Repeat a send on TransientRequestError until the policy runs out.

    The wrapped function returns a RequestResult; once attempts are exhausted
    the last transient failure's result is returned instead of raising.
    """

    def decorator(func: SendFunc) -> SendFunc:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> RequestResult:
            delays = policy.delays()
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except TransientRequestError as exc:
                    delay = next(delays, None)
                    if delay is None:
                        return exc.result
                    if on_retry is not None:
                        on_retry(exc, attempt, delay)
                    sleep(delay)
                    attempt += 1

        return wrapper

    return decorator


def failed_before_send(exc: requests.ConnectionError) -> bool:
    """True when the connection was never established, so nothing was sent."""
    if isinstance(exc, requests.ConnectTimeout):
        return True
    cause = exc.args[0] if exc.args else None
    reason = getattr(cause, "reason", cause)
    return isinstance(reason, NewConnectionError)


def extract_error(response: requests.Response | None) -> str:
    """Pick the error text: JSON `error` field, then status text, then a generic one."""
    if response is None:
        return GENERIC_ERROR

    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        error = body.get("error")
        if error:
            return str(error)

    reason = str(response.reason or "").strip()
    if reason:
        return reason
    return GENERIC_ERROR


class Transport:
    """Issues backend requests and normalizes every outcome into a RequestResult."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        session: requests.Session | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or get_settings()
        self.base_url = self.settings.base_url
        self.timeout = float(self.settings.gee_api_timeout_seconds)
        self.retry_policy = retry_policy or RetryPolicy.from_settings(self.settings)

        self._owns_session = session is None
        self.session = session or requests.Session()
        self.default_headers = {"Content-Type": "application/json"}
        if self.settings.gee_api_key:
            self.default_headers["X-API-Key"] = self.settings.gee_api_key

        self._send_with_retry = retrying(
            self.retry_policy,
            sleep=sleep,
            on_retry=self._log_retry,
        )(self._send)

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def request(
        self,
        endpoint: str,
        *,
        method: str = "GET",
        data: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> RequestResult:
        verb = method.strip().upper() or "GET"
        started = time.monotonic()
        try:
            result = self._send_with_retry(
                verb,
                endpoint,
                data=data,
                params=params,
                headers=headers,
            )
        except Exception:
            logger.exception("API request crashed method=%s endpoint=%s", verb, endpoint)
            result = RequestResult.fail(GENERIC_ERROR)

        elapsed = time.monotonic() - started
        record_api_request(verb, endpoint, result.success, elapsed)
        if not result.success:
            logger.error(
                "API request failed method=%s endpoint=%s error=%s duration_s=%.3f",
                verb,
                endpoint,
                result.error,
                elapsed,
                extra={"method": verb, "endpoint": endpoint, "duration_s": round(elapsed, 3)},
            )
        else:
            logger.debug(
                "API request completed method=%s endpoint=%s duration_s=%.3f",
                verb,
                endpoint,
                elapsed,
            )
        return result

    def _send(
        self,
        method: str,
        endpoint: str,
        *,
        data: Any,
        params: dict[str, Any] | None,
        headers: dict[str, str] | None,
    ) -> RequestResult:
        url = f"{self.base_url}{endpoint}"
        merged_headers = {**self.default_headers, **(headers or {})}
        idempotent = self.retry_policy.retries_method(method)

        try:
            response = self.session.request(
                method,
                url,
                json=data,
                params=params,
                headers=merged_headers,
                timeout=self.timeout,
            )
        except requests.ConnectTimeout as exc:
            raise TransientRequestError(
                RequestResult.fail(TIMEOUT_STATUS_TEXT), method=method, endpoint=endpoint
            ) from exc
        except requests.Timeout:
            # The backend may already be working on it; resolve once the timeout elapses.
            return RequestResult.fail(TIMEOUT_STATUS_TEXT)
        except requests.ConnectionError as exc:
            result = RequestResult.fail(GENERIC_ERROR)
            if idempotent or failed_before_send(exc):
                raise TransientRequestError(result, method=method, endpoint=endpoint) from exc
            return result
        except requests.RequestException as exc:
            logger.warning("API request rejected method=%s endpoint=%s: %s", method, endpoint, exc)
            return RequestResult.fail(GENERIC_ERROR)

        if not response.ok:
            result = RequestResult.fail(extract_error(response))
            retryable = RETRYABLE_STATUS_CODES if idempotent else UNPROCESSED_STATUS_CODES
            if response.status_code in retryable:
                raise TransientRequestError(result, method=method, endpoint=endpoint)
            return result

        if response.status_code == 204 or not response.content:
            return RequestResult.ok(None)

        try:
            payload = response.json()
        except ValueError:
            return RequestResult.fail(INVALID_JSON_ERROR)
        return RequestResult.ok(payload)

    def _log_retry(self, exc: TransientRequestError, attempt: int, delay: float) -> None:
        record_api_retry(exc.method, exc.endpoint)
        logger.warning(
            "Transient API failure method=%s endpoint=%s attempt=%s error=%s; retrying in %.2fs",
            exc.method,
            exc.endpoint,
            attempt,
            exc.result.error,
            delay,
            extra={"method": exc.method, "endpoint": exc.endpoint, "attempt": attempt},
        )
