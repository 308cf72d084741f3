"""Error handling helpers shared by the pipeline stages.

- safe_execute_async() / safe_execute_sync(): run optional operations that
  should degrade gracefully (image compression, illustration)
- is_transient_error(): classify provider and network failures
- call_with_policy(): per-attempt timeout plus bounded retries with backoff

asyncio.CancelledError is never caught here: cancelling the caller's task
cancels the in-flight call or the backoff sleep.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

import aiohttp
from google.genai import errors as genai_errors

from fridge_chef.utils.config import StagePolicy
from fridge_chef.utils.logger import logger

T = TypeVar("T")

TRANSIENT_STATUS_CODES = (408, 429, 500, 502, 503, 504)
TRANSIENT_KEYWORDS = ("timeout", "timed out", "connection", "429", "500", "502", "503", "504", "retryable", "unavailable")


class InvalidModelOutput(Exception):
    """The model answered, but the answer failed schema validation.

    Never transient: retried only when a StagePolicy sets retry_on_invalid_output.
    """

    def __init__(self, errors: list[str], raw_text: str = "") -> None:
        super().__init__("; ".join(errors) or "invalid model output")
        self.errors = errors
        self.raw_text = raw_text


def _log_error(operation_name: str, exception: BaseException, log_level: str = "warning") -> None:
    """Log error with appropriate level. Helper to reduce duplication.

    Args:
        operation_name: Description for logging
        exception: Exception that occurred
        log_level: Logging level ("debug", "warning", "error"). Default: "warning".
    """
    msg = f"{operation_name}: {type(exception).__name__}: {exception}"
    if log_level == "debug":
        logger.debug(msg)
    elif log_level == "error":
        logger.error(msg)
    else:
        logger.warning(msg)


async def safe_execute_async(
    coro: Awaitable[T],
    operation_name: str,
    log_level: str = "warning",
    default_return: Any = None,
    reraise: bool = False,
):
    """Safely execute async operation with consistent error logging.

    Args:
        coro: Awaitable coroutine to execute.
        operation_name: Description for logging (e.g., "Generate illustration").
        log_level: Logging level ("debug", "warning", "error"). Default: "warning".
        default_return: Value to return on exception. Default: None (graceful degradation).
        reraise: If True, re-raise exception after logging (for critical ops). Default: False.

    Returns:
        Result of coroutine if successful, default_return on exception if reraise=False.
    """
    try:
        return await coro
    except Exception as e:
        _log_error(operation_name, e, log_level)
        if reraise:
            raise
        return default_return


def safe_execute_sync(
    func: Callable[[], T],
    operation_name: str,
    log_level: str = "warning",
    default_return: Any = None,
    reraise: bool = False,
):
    """Synchronous version of safe_execute_async. Same behavior and patterns."""
    try:
        return func()
    except Exception as e:
        _log_error(operation_name, e, log_level)
        if reraise:
            raise
        return default_return


def is_transient_error(exception: BaseException) -> bool:
    """Return True for failures worth retrying with the same input.

    Transient: timeouts, dropped connections, provider 408/429/5xx.
    Permanent: invalid API key, malformed request, safety blocks, bad output.
    """
    if isinstance(exception, InvalidModelOutput):
        return False
    if isinstance(exception, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True
    if isinstance(exception, aiohttp.ClientResponseError):
        return exception.status in TRANSIENT_STATUS_CODES
    if isinstance(exception, (aiohttp.ClientConnectionError, aiohttp.ServerTimeoutError)):
        return True
    if isinstance(exception, genai_errors.APIError):
        return exception.code in TRANSIENT_STATUS_CODES
    # Transport errors raised below the SDK (httpx, google-auth) only carry a message
    error_str = str(exception).lower()
    return any(keyword in error_str for keyword in TRANSIENT_KEYWORDS)


async def call_with_policy(
    operation: Callable[[], Awaitable[T]],
    policy: StagePolicy,
    operation_name: str,
    is_retryable: Optional[Callable[[BaseException], bool]] = None,
) -> T:
    """Run `operation` under a stage policy.

    Each attempt calls `operation()` afresh and is bounded by
    policy.timeout_seconds. Retryable failures sleep with (exponential) backoff
    and try again until policy.max_attempts is reached. InvalidModelOutput is
    only retried when policy.retry_on_invalid_output is set.

    Args:
        operation: Zero-argument callable returning a new awaitable per attempt.
        policy: Attempts, backoff, and timeout settings.
        operation_name: Description for logging.
        is_retryable: Classifier for other exceptions. Default: is_transient_error.

    Returns:
        Result of the first successful attempt.

    Raises:
        The last exception raised by `operation` once attempts are exhausted or
        the failure is not retryable. Timeouts surface as asyncio.TimeoutError.
    """
    classify = is_retryable or is_transient_error

    for attempt in range(1, policy.max_attempts + 1):
        try:
            if policy.timeout_seconds is None:
                return await operation()
            return await asyncio.wait_for(operation(), timeout=policy.timeout_seconds)
        except Exception as e:
            if isinstance(e, InvalidModelOutput):
                retryable = policy.retry_on_invalid_output
            else:
                retryable = classify(e)

            if not retryable or attempt >= policy.max_attempts:
                level = "warning" if attempt > 1 or not retryable else "debug"
                _log_error(f"{operation_name} failed after {attempt}/{policy.max_attempts} attempt(s)", e, level)
                raise

            delay = policy.delay_for(attempt)
            logger.debug(
                f"{operation_name}: retrying (attempt {attempt + 1}/{policy.max_attempts}) "
                f"after {delay:.1f}s: {type(e).__name__}: {e}"
            )
            await asyncio.sleep(delay)

    # max_attempts >= 1 is enforced by StagePolicy, the loop always returns or raises
    raise RuntimeError(f"{operation_name}: no attempts made")
