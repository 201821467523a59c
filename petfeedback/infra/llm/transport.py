"""Transport policy: classify failures, decide retries, compute backoff."""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from petfeedback.core.domain.exceptions import (
    LLMConnectionError,
    LLMResponseFormatError,
    LLMTimeoutError,
    RetriesExhaustedError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Linear backoff: attempt k waits BASE_DELAY_MS * (k - 1).
BASE_DELAY_MS = 500


class ErrorClass(str, Enum):
    TIMEOUT = "timeout"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    UNKNOWN = "unknown"


_SERVER_SIDE_TYPES: tuple[type[BaseException], ...] = (
    LLMConnectionError,
    LLMResponseFormatError,
    httpx.TransportError,
    json.JSONDecodeError,
)


def _status_code(exc: BaseException) -> Optional[int]:
    status = getattr(exc, "status_code", None)
    return status if isinstance(status, int) else None


def classify_error(exc: BaseException) -> ErrorClass:
    """Map a raised failure to exactly one ErrorClass.

    The timeout path is checked first so a cancelled request is never
    mistaken for a network failure.
    """
    if isinstance(exc, (LLMTimeoutError, asyncio.TimeoutError, httpx.TimeoutException)):
        return ErrorClass.TIMEOUT

    status = _status_code(exc)
    if status is not None:
        if 400 <= status <= 499:
            return ErrorClass.CLIENT_ERROR
        return ErrorClass.SERVER_ERROR

    if isinstance(exc, _SERVER_SIDE_TYPES):
        return ErrorClass.SERVER_ERROR
    return ErrorClass.UNKNOWN


def is_retryable(error_class: ErrorClass) -> bool:
    return error_class in (ErrorClass.SERVER_ERROR, ErrorClass.UNKNOWN)


def backoff_delay_ms(attempt: int) -> int:
    """Delay before 1-indexed *attempt*; the first attempt never waits."""
    if attempt < 2:
        return 0
    return BASE_DELAY_MS * (attempt - 1)


def attempt_budget(max_retries: int) -> int:
    """Total attempts allowed; 0 still means one try."""
    return max(1, max_retries)


async def call_with_retry(
    call: Callable[[], Awaitable[T]],
    *,
    provider: str,
    max_retries: int,
    sleep: Optional[Callable[[float], Awaitable[object]]] = None,
) -> T:
    """Run *call* until it succeeds, fails permanently, or the budget runs out.

    Timeouts and 4xx failures are re-raised as-is after a single attempt.
    Cancellation is never caught, so a pending backoff sleep can be abandoned.
    """
    sleep = sleep or asyncio.sleep
    attempts = attempt_budget(max_retries)
    last_err: Exception | None = None

    for attempt in range(1, attempts + 1):
        delay_ms = backoff_delay_ms(attempt)
        if delay_ms:
            logger.debug("%s: retrying in %dms (attempt %d/%d)", provider, delay_ms, attempt, attempts)
            await sleep(delay_ms / 1000)

        try:
            return await call()
        except Exception as exc:
            error_class = classify_error(exc)
            if not is_retryable(error_class):
                logger.debug("%s: %s on attempt %d - not retrying", provider, error_class.value, attempt)
                raise
            last_err = exc
            logger.warning(
                "%s attempt %d/%d failed (%s): %s",
                provider, attempt, attempts, error_class.value, exc,
            )

    raise RetriesExhaustedError(provider, attempts, last_err) from last_err
