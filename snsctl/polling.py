"""
Bounded Polling
===============
One primitive for every "wait until the remote side gets there" step.

The remote services never push; we poll with a fixed interval and a fixed
attempt budget. Transport errors inside a check count as a failed attempt
and are retried (checks must be idempotent reads). Anything else a check
raises propagates at once.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .errors import NetworkError, TimeoutWaitingForState

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PollPolicy:
    """Fixed sleep interval and maximum attempt count."""
    interval: float
    max_attempts: int

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval < 0:
            raise ValueError("interval must not be negative")


async def wait_for(
    check: Callable[[], Awaitable[Optional[T]]],
    policy: PollPolicy,
    description: str,
    observe: Optional[Callable[[], Any]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Call `check` until it returns something other than None.

    Args:
        check: async callable returning the awaited value, or None for "not yet"
        policy: interval and attempt bound
        description: what we are waiting for (used in logs and the timeout error)
        observe: optional callable reporting the last observed remote state
            for the timeout message
        sleep: injectable sleep

    Returns:
        The first non-None check result.

    Raises:
        TimeoutWaitingForState: when the attempt budget runs out.
    """
    last_error: Optional[NetworkError] = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            result = await check()
        except NetworkError as e:
            last_error = e
            logger.warning(
                "%s: check failed on attempt %d/%d: %s",
                description, attempt, policy.max_attempts, e,
            )
            result = None

        if result is not None:
            logger.debug("%s: satisfied after %d attempt(s)", description, attempt)
            return result

        if attempt < policy.max_attempts:
            await sleep(policy.interval)

    if observe is not None:
        last_observed = observe()
    elif last_error is not None:
        last_observed = str(last_error)
    else:
        last_observed = None
    raise TimeoutWaitingForState(description, policy.max_attempts, last_observed)
