"""
Retry policy for content dispatch.
Transient injection failures are retried with a fixed delay; element failures never are.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from ..exceptions import ElementError, TransientDispatchError


logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class RetryPolicy:
    """
    Configuration for dispatch retry behavior.

    Attributes:
        max_retries: Maximum number of extra attempts (0 = no retries)
        delay_ms: Delay between attempts in milliseconds
        retryable: Exception types that trigger a retry
        non_retryable: Exception types that are never retried, even when
            they subclass a retryable type
    """
    max_retries: int = 2
    delay_ms: int = 500
    retryable: Tuple[Type[BaseException], ...] = (TransientDispatchError,)
    non_retryable: Tuple[Type[BaseException], ...] = field(default=(ElementError,))

    @classmethod
    def none(cls) -> 'RetryPolicy':
        """Policy that never retries."""
        return cls(max_retries=0, delay_ms=0)

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        """
        Determine if a retry should be attempted.

        Args:
            error: Exception raised by the last attempt
            attempt: Current attempt number (0-based)

        Returns:
            True if should retry, False otherwise
        """
        if attempt >= self.max_retries:
            return False

        if isinstance(error, self.non_retryable):
            return False

        return isinstance(error, self.retryable)

    async def wait(self) -> None:
        """Wait for the configured delay between retries."""
        if self.delay_ms > 0:
            await asyncio.sleep(self.delay_ms / 1000.0)

    async def run(self, operation: Callable[[], Awaitable[T]], description: str = "operation") -> T:
        """
        Await operation(), retrying per this policy.

        The last error is re-raised once attempts are exhausted or the error
        is not retryable.
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                if not self.should_retry(e, attempt):
                    raise
                attempt += 1
                logger.debug(
                    f"{description} failed ({e}), retrying "
                    f"(attempt {attempt}/{self.max_retries})"
                )
                await self.wait()
