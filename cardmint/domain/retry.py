"""Bounded retry with exponential backoff for calls to the external ledger."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import ParamSpec, TypeVar

from .exceptions import ExternalCallError

P = ParamSpec("P")
T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RetryPolicy:
    attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    timeout: float | None = None

    def delay_for(self, attempt: int) -> float:
        return min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))


async def call_with_retry(
    label: str,
    func: Callable[P, Awaitable[T]],
    *args: P.args,
    policy: RetryPolicy,
    **kwargs: P.kwargs,
) -> T:
    """Run ``func`` until it succeeds or ``policy.attempts`` is used up.

    Timeouts and ``ExternalCallError`` are retried; any other exception
    propagates immediately. The final failure is raised as
    ``ExternalCallError``.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            if policy.timeout is not None:
                return await asyncio.wait_for(func(*args, **kwargs), timeout=policy.timeout)
            return await func(*args, **kwargs)
        except (ExternalCallError, asyncio.TimeoutError) as exc:
            reason = str(exc) or type(exc).__name__
            if attempt >= max(1, policy.attempts):
                logger.warning(
                    "External call '%s' failed after %s attempt(s): %s",
                    label,
                    attempt,
                    reason,
                )
                if isinstance(exc, ExternalCallError):
                    raise
                raise ExternalCallError(f"{label} timed out after {policy.timeout}s") from exc
            delay = policy.delay_for(attempt)
            logger.info(
                "External call '%s' failed (%s); retrying in %.1f s (attempt %s/%s).",
                label,
                reason,
                delay,
                attempt,
                policy.attempts,
            )
            await asyncio.sleep(delay)
