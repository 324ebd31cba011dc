"""Polling and load-completion waits.

Provides the element wait used before selector-based actions and the bounded
tab load wait used after navigation.
"""

import asyncio
import logging
from dataclasses import dataclass

from ..exceptions import ElementTimeoutError, TabLoadTimeoutError, TransientDispatchError
from ..host.types import ContentAction, ContentCapability, TabHandle, TabHost


logger = logging.getLogger(__name__)


@dataclass
class ElementWaitConfig:
    """Configuration for element wait operations."""
    selector: str
    timeout_ms: int = 10000
    poll_ms: int = 500


@dataclass
class ElementWaitResult:
    """Result of an element wait operation."""
    found: bool
    wait_duration_ms: int
    poll_count: int
    timed_out: bool


class ElementWait:
    """Polls the page until an element matching a selector exists.

    Polls that fail to inject (page mid-navigation) count as "not yet";
    they are not errors while the deadline has not passed.
    """

    def __init__(self, content: ContentCapability, handle: TabHandle, config: ElementWaitConfig):
        self.content = content
        self.handle = handle
        self.config = config

    async def execute(self) -> ElementWaitResult:
        """Poll until the element exists or the timeout elapses."""
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        deadline = start_time + self.config.timeout_ms / 1000.0
        poll_interval_sec = self.config.poll_ms / 1000.0
        poll_count = 0

        while True:
            poll_count += 1
            if await self._check():
                elapsed_ms = int((loop.time() - start_time) * 1000)
                return ElementWaitResult(
                    found=True,
                    wait_duration_ms=elapsed_ms,
                    poll_count=poll_count,
                    timed_out=False
                )

            # Last sleep is clamped to the deadline; one final check follows it
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(poll_interval_sec, remaining))

        elapsed_ms = int((loop.time() - start_time) * 1000)
        return ElementWaitResult(
            found=False,
            wait_duration_ms=elapsed_ms,
            poll_count=poll_count,
            timed_out=True
        )

    async def _check(self) -> bool:
        try:
            result = await self.content.execute_in_page(
                self.handle, ContentAction.EXISTS, {'selector': self.config.selector}
            )
        except TransientDispatchError as e:
            logger.debug(f"Element check for '{self.config.selector}' not injected yet: {e}")
            return False
        return bool(result is not None and result.success and result.data)


async def wait_for_element(
    content: ContentCapability,
    handle: TabHandle,
    selector: str,
    timeout_ms: int = 10000,
    poll_ms: int = 500,
) -> ElementWaitResult:
    """Wait for an element, raising ElementTimeoutError when it never appears.

    Args:
        content: Content capability used for probing
        handle: Tab to poll
        selector: Element selector
        timeout_ms: Maximum time to wait in milliseconds
        poll_ms: Polling interval in milliseconds

    Returns:
        ElementWaitResult for a found element
    """
    waiter = ElementWait(content, handle, ElementWaitConfig(selector, timeout_ms, poll_ms))
    result = await waiter.execute()
    if result.timed_out:
        raise ElementTimeoutError(
            f"Element timed out ({timeout_ms}ms): {selector}",
            timeout_sec=timeout_ms / 1000.0
        )
    logger.debug(f"Element '{selector}' found after {result.poll_count} poll(s)")
    return result


async def wait_for_tab_load(host: TabHost, handle: TabHandle, timeout_sec: float = 30.0) -> None:
    """Await the host's load-completion signal for a tab, bounded by timeout_sec."""
    try:
        await asyncio.wait_for(host.wait_for_load(handle), timeout=timeout_sec)
    except asyncio.TimeoutError:
        raise TabLoadTimeoutError(
            f"Page did not finish loading within {timeout_sec:g}s (tab {handle})",
            timeout_sec=timeout_sec
        )
