"""
Async retry primitive.

Used to wait for the vault's metadata cache after a file is created or
renamed: the header may not be parsed yet when the lifecycle event
arrives. Waiting suspends the calling task only, so other events keep
being processed in the meantime.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar, Union

from .config import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Attempts and delays for retry_until.

    The delay before attempt n+1 is delay * backoff**(n-1), so the default
    backoff of 1.0 gives a fixed delay.
    """
    attempts: int = 10
    delay: float = 0.05
    backoff: float = 1.0

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryPolicy":
        return cls(attempts=config.attempts, delay=config.delay, backoff=config.backoff)

    def delays(self) -> list[float]:
        """Sleep durations between consecutive attempts."""
        return [self.delay * (self.backoff ** i) for i in range(max(self.attempts - 1, 0))]


async def retry_until(
    probe: Callable[[], Union[Optional[T], Awaitable[Optional[T]]]],
    policy: RetryPolicy,
) -> Optional[T]:
    """
    Call probe until it returns a value other than None.

    Args:
        probe: Sync or async callable; None means "not ready yet"
        policy: Number of attempts and delays between them

    Returns:
        The first non-None value, or None when every attempt came back empty
    """
    delays = policy.delays()
    for attempt in range(policy.attempts):
        result = probe()
        if asyncio.iscoroutine(result):
            result = await result
        if result is not None:
            if attempt:
                logger.debug("Probe succeeded on attempt %d", attempt + 1)
            return result
        if attempt < len(delays):
            await asyncio.sleep(delays[attempt])
    return None
