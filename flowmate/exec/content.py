"""
Content dispatch.
Wraps the external content capability with tab checks, element waits, retries
and result handling, and writes produced values into the variable store.
"""

import logging
from typing import Any, Dict, Optional

from ..config import EngineConfig
from ..exceptions import ElementError, InvalidStateError, TransientDispatchError
from ..host.extract import encode_table
from ..host.types import ContentAction, ContentCapability, ContentResult, TabHandle
from ..variables.substitution import VariableStore, strip_sigil
from .params import parse_int
from .retry import RetryPolicy
from .wait import wait_for_element


logger = logging.getLogger(__name__)


class ContentDispatcher:
    """
    Runs in-page actions through a content capability.

    Selector-based actions first wait for their element; the capability
    itself checks visibility. Injection failures are retried per the retry
    policy, element failures surface immediately.
    """

    def __init__(
        self,
        content: ContentCapability,
        config: Optional[EngineConfig] = None,
        retry_policy: Optional[RetryPolicy] = None
    ):
        """
        Initialize content dispatcher.

        Args:
            content: External content capability
            config: Engine configuration (timeouts, retry defaults)
            retry_policy: Override for the transient-failure retry policy
        """
        self.content = content
        self.config = config or EngineConfig()
        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=self.config.max_retries,
            delay_ms=self.config.retry_delay_ms
        )

    async def perform(
        self,
        handle: TabHandle,
        action: ContentAction,
        params: Dict[str, Any],
        variables: VariableStore,
    ) -> TabHandle:
        """
        Perform a DOM action and capture its data.

        Args:
            handle: Target tab
            action: Action to perform
            params: Interpolated block parameters
            variables: Run variables; receives data under params['variable']

        Returns:
            The unchanged tab handle
        """
        if handle is None:
            raise InvalidStateError(f"Invalid tab handle (action: {action.value})")

        selector = params.get('selector')
        if selector:
            timeout_ms = self.config.element_timeout_ms
            if action == ContentAction.WAIT_FOR_ELEMENT:
                timeout_ms = parse_int(params.get('timeout'), timeout_ms)
            await wait_for_element(
                self.content, handle, str(selector),
                timeout_ms=timeout_ms,
                poll_ms=self.config.element_poll_ms
            )

        result = await self.query(handle, action, params)

        if action == ContentAction.TYPE and result.verified is False:
            logger.warning(f"Typing could not be verified: {selector}")

        if result.has_data:
            data = result.data
            if action == ContentAction.READ_TABLE and isinstance(data, list):
                data = encode_table(data)
            target = params.get('variable')
            if target and variables.assign(target, data):
                logger.info(f"Variable saved: {strip_sigil(target)} = {self._preview(data)}")

        return handle

    async def query(self, handle: TabHandle, action: ContentAction, params: Dict[str, Any]) -> ContentResult:
        """
        Run one action with retries and return its successful result.

        Raises:
            TransientDispatchError: When every attempt failed to inject
            ElementError: When the page reported an element/action error
        """
        async def attempt() -> ContentResult:
            result = await self.content.execute_in_page(handle, action, params)
            if result is None:
                raise TransientDispatchError(f"Command could not be executed (script error): {action.value}")
            return result

        result = await self.retry_policy.run(attempt, description=f"Content action '{action.value}'")

        if result.error:
            raise ElementError(result.error)
        return result

    def _preview(self, data: Any) -> str:
        text = data if isinstance(data, str) else repr(data)
        limit = self.config.display_text_limit
        if len(text) > limit:
            return text[:limit] + '...'
        return text
