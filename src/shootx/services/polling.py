"""Poll-until-ready combinator shared by server-side and client-side loops."""

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class PollingExhausted(Exception):
    """Raised when the attempt ceiling is reached without a result."""

    def __init__(self, attempts: int, last_error: BaseException | None = None):
        super().__init__(f"No result after {attempts} attempts")
        self.attempts = attempts
        self.last_error = last_error


async def poll_until(
    check: Callable[[], Awaitable[T | None]],
    *,
    interval: float,
    max_attempts: int,
    retry_on: tuple[type[BaseException], ...] = (),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Call ``check`` until it returns a value or the attempt ceiling is hit.

    Each call to ``check`` is one attempt. A ``None`` result means "not ready
    yet". Exceptions listed in ``retry_on`` are also treated as "not ready" and
    consume an attempt; any other exception propagates immediately. The loop
    sleeps ``interval`` seconds between attempts, never after the last one.

    Args:
        check: Async callable returning the result or None
        interval: Seconds to wait between attempts
        max_attempts: Attempt ceiling (must be >= 1)
        retry_on: Exception types counted as an unsuccessful attempt
        sleep: Sleep coroutine (injectable for tests)

    Returns:
        First non-None value returned by ``check``

    Raises:
        PollingExhausted: If ``max_attempts`` attempts produced no result
        ValueError: If ``max_attempts`` is less than 1
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error: BaseException | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            result = await check()
        except retry_on as e:
            last_error = e
            logger.debug(
                "polling.attempt_failed",
                attempt=attempt,
                max_attempts=max_attempts,
                error_type=type(e).__name__,
                error=str(e),
            )
        else:
            if result is not None:
                return result

        if attempt < max_attempts:
            await sleep(interval)

    raise PollingExhausted(max_attempts, last_error)
