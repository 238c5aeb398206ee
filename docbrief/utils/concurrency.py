"""Shared concurrency primitives for the document pipeline.

Two patterns are exposed:

1. **throttled_gather** -- A drop-in replacement for ``asyncio.gather`` that
   wraps each awaitable in a semaphore acquire/release.  The orchestrator
   uses it to process the documents of a batch with a bounded worker count.

2. **call_with_retry** -- Runs one external call under a hard timeout and
   retries it a small fixed number of times with jittered backoff when it
   fails with a :class:`TransientExternalError` or times out.  Any other
   exception propagates immediately.
"""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, TypeVar

import structlog

from docbrief.utils.errors import TransientExternalError
from docbrief.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently under a semaphore.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Semaphore bounding how many awaitables run at once.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


async def call_with_retry(
    fn: Callable[[], Awaitable[_T]],
    *,
    operation: str,
    timeout: float,
    retries: int = 2,
    backoff_min: float = 0.2,
    backoff_max: float = 0.5,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> _T:
    """Call *fn* with a per-attempt timeout, retrying transient failures.

    Parameters
    ----------
    fn:
        Zero-argument factory returning a fresh awaitable per attempt.
    operation:
        Short name used in log events and error messages.
    timeout:
        Hard timeout in seconds for each attempt.
    retries:
        Number of retries after the first attempt.
    backoff_min, backoff_max:
        Bounds in seconds for the uniform jitter slept between attempts.
    sleep:
        Sleep function, injectable for tests.

    Returns
    -------
    _T
        The first successful result.

    Raises
    ------
    TransientExternalError
        When every attempt failed or timed out.  The last underlying
        error is chained as ``__cause__``.
    """
    last_error: Exception | None = None
    for attempt in range(retries + 1):
        try:
            return await asyncio.wait_for(fn(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            last_error = exc
            _logger.warning(
                "external_call_timeout",
                operation=operation,
                attempt=attempt + 1,
                timeout=timeout,
            )
        except TransientExternalError as exc:
            last_error = exc
            _logger.warning(
                "external_call_failed",
                operation=operation,
                attempt=attempt + 1,
                error=str(exc),
            )

        if attempt < retries:
            await sleep(random.uniform(backoff_min, backoff_max))

    if isinstance(last_error, TransientExternalError):
        raise last_error
    raise TransientExternalError(
        message=f"{operation} timed out after {retries + 1} attempt(s)",
    ) from last_error
