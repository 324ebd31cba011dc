"""
Step executor module for dispatching single blocks.
Maps each block type to a tab operation, a local data operation, or a DOM action.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from ..config import EngineConfig
from ..exceptions import (
    BlockParameterError,
    InvalidStateError,
    TabNotFoundError,
    UnknownBlockTypeError,
)
from ..flow import Block, BlockType, CONTROL_TYPES
from ..host.types import ContentAction, ContentCapability, TabHandle, TabHost
from ..variables.substitution import RESERVED_NAMES, SCREENSHOT_VAR, VariableStore, strip_sigil
from .content import ContentDispatcher
from .params import normalize_choice, parse_bool, parse_int
from .wait import wait_for_tab_load


logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any], TabHandle, VariableStore], Awaitable[TabHandle]]

# Block types served by the content capability, mapped to their action
CONTENT_ACTIONS: Dict[BlockType, ContentAction] = {
    BlockType.CLICK: ContentAction.CLICK,
    BlockType.TYPE: ContentAction.TYPE,
    BlockType.SELECT: ContentAction.SELECT,
    BlockType.SCROLL: ContentAction.SCROLL,
    BlockType.HOVER: ContentAction.HOVER,
    BlockType.KEYBOARD: ContentAction.KEYBOARD,
    BlockType.WAIT_FOR_ELEMENT: ContentAction.WAIT_FOR_ELEMENT,
    BlockType.READ_TEXT: ContentAction.READ_TEXT,
    BlockType.READ_ATTRIBUTE: ContentAction.READ_ATTRIBUTE,
    BlockType.READ_TABLE: ContentAction.READ_TABLE,
}


class StepExecutor:
    """
    Executes one non-control block against the current tab.

    Control blocks (condition, loop, for_each) are handled by the runner and
    the control-flow handlers; every other BlockType must have an entry in
    the handler table.
    """

    def __init__(
        self,
        host: TabHost,
        content: ContentCapability,
        config: Optional[EngineConfig] = None,
        dispatcher: Optional[ContentDispatcher] = None
    ):
        """
        Initialize step executor.

        Args:
            host: Tab lifecycle capability
            content: DOM content capability
            config: Engine configuration
            dispatcher: Pre-built content dispatcher (defaults to one over content)
        """
        self.host = host
        self.config = config or EngineConfig()
        self.dispatcher = dispatcher or ContentDispatcher(content, self.config)

        self.handlers: Dict[BlockType, Handler] = {
            BlockType.NAVIGATE: self._navigate,
            BlockType.NEW_TAB: self._new_tab,
            BlockType.ACTIVATE_TAB: self._activate_tab,
            BlockType.SWITCH_TAB: self._switch_tab,
            BlockType.CLOSE_TAB: self._close_tab,
            BlockType.PIN_TAB: self._pin_tab,
            BlockType.MUTE_TAB: self._mute_tab,
            BlockType.REFRESH: self._refresh,
            BlockType.WAIT: self._wait,
            BlockType.SET_VARIABLE: self._set_variable,
            BlockType.GET_TAB_INFO: self._get_tab_info,
            BlockType.SCREENSHOT: self._screenshot,
        }
        for block_type, action in CONTENT_ACTIONS.items():
            self.handlers[block_type] = self._content_handler(action)

        missing = set(BlockType) - set(self.handlers) - CONTROL_TYPES
        if missing:
            names = ', '.join(sorted(t.value for t in missing))
            raise RuntimeError(f"No handler registered for block types: {names}")

    async def execute_block(self, block: Block, tab_handle: TabHandle, variables: VariableStore) -> TabHandle:
        """
        Interpolate a block's parameters and dispatch it.

        Args:
            block: Block to execute
            tab_handle: Current tab (may be None)
            variables: Run variables, read for interpolation and written by data blocks

        Returns:
            The tab handle subsequent blocks should target

        Raises:
            UnknownBlockTypeError: For tags outside the vocabulary
            InvalidStateError: For control blocks, which the runner must handle
        """
        block_type = block.block_type
        if block_type is None:
            raise UnknownBlockTypeError(block.type)
        if block_type in CONTROL_TYPES:
            raise InvalidStateError(f"Control block '{block.type}' cannot be dispatched as a single step")

        params = variables.interpolate_params(block.params or {})
        logger.debug(f"Executing block {block.id} ({block.type})")
        return await self.handlers[block_type](params, tab_handle, variables)

    # === Navigation & tabs ===

    async def _navigate(self, p: Dict[str, Any], tab_handle: TabHandle, variables: VariableStore) -> TabHandle:
        url = p.get('url')
        if not url:
            raise BlockParameterError("No URL specified")
        if tab_handle is not None:
            await self.host.update(tab_handle, url=str(url))
        else:
            tab_handle = await self.host.create(str(url))
        await self._wait_for_load(tab_handle)
        return tab_handle

    async def _new_tab(self, p: Dict[str, Any], tab_handle: TabHandle, variables: VariableStore) -> TabHandle:
        url = p.get('url') or 'about:blank'
        new_handle = await self.host.create(str(url), active=parse_bool(p.get('active'), default=True))
        await self._wait_for_load(new_handle)
        return new_handle

    async def _activate_tab(self, p: Dict[str, Any], tab_handle: TabHandle, variables: VariableStore) -> TabHandle:
        query = str(p.get('query') or '').lower()
        exact = normalize_choice(p.get('match_type'), 'contains') == 'exact'

        for tab in await self.host.query():
            title = (tab.title or '').lower()
            url = (tab.url or '').lower()
            if exact:
                matched = title == query or url == query
            else:
                matched = query in title or query in url
            if matched:
                await self.host.update(tab.id, active=True)
                return tab.id

        raise TabNotFoundError(f'Tab not found: "{query}"')

    async def _switch_tab(self, p: Dict[str, Any], tab_handle: TabHandle, variables: VariableStore) -> TabHandle:
        if tab_handle is None:
            raise InvalidStateError("No active tab")
        current = await self.host.get(tab_handle)
        tabs = sorted(await self.host.query(window_id=current.window_id), key=lambda t: t.index)
        if not tabs:
            return tab_handle

        position = next((i for i, t in enumerate(tabs) if t.id == tab_handle), 0)
        if normalize_choice(p.get('direction'), 'next') == 'previous':
            target = tabs[(position - 1) % len(tabs)]
        else:
            target = tabs[(position + 1) % len(tabs)]

        await self.host.update(target.id, active=True)
        return target.id

    async def _close_tab(self, p: Dict[str, Any], tab_handle: TabHandle, variables: VariableStore) -> TabHandle:
        if normalize_choice(p.get('target'), 'current') == 'others':
            if tab_handle is None:
                raise InvalidStateError("No active tab")
            current = await self.host.get(tab_handle)
            tabs = await self.host.query(window_id=current.window_id)
            to_close = [t.id for t in tabs if t.id != tab_handle]
            if to_close:
                await self.host.remove(to_close)
            return tab_handle

        if tab_handle is not None:
            await self.host.remove([tab_handle])
        remaining = await self.host.query(active=True)
        return remaining[0].id if remaining else None

    async def _pin_tab(self, p: Dict[str, Any], tab_handle: TabHandle, variables: VariableStore) -> TabHandle:
        if tab_handle is not None:
            pinned = normalize_choice(p.get('action'), 'pin') == 'pin'
            await self.host.update(tab_handle, pinned=pinned)
        return tab_handle

    async def _mute_tab(self, p: Dict[str, Any], tab_handle: TabHandle, variables: VariableStore) -> TabHandle:
        if tab_handle is not None:
            muted = normalize_choice(p.get('action'), 'mute') == 'mute'
            await self.host.update(tab_handle, muted=muted)
        return tab_handle

    async def _refresh(self, p: Dict[str, Any], tab_handle: TabHandle, variables: VariableStore) -> TabHandle:
        if tab_handle is not None:
            await self.host.reload(tab_handle)
            await self._wait_for_load(tab_handle)
        return tab_handle

    async def _wait_for_load(self, tab_handle: TabHandle) -> None:
        await wait_for_tab_load(self.host, tab_handle, timeout_sec=self.config.load_timeout_sec)

    # === Wait, data & variables ===

    async def _wait(self, p: Dict[str, Any], tab_handle: TabHandle, variables: VariableStore) -> TabHandle:
        duration_ms = max(0, parse_int(p.get('duration'), self.config.default_wait_ms))
        await asyncio.sleep(duration_ms / 1000.0)
        return tab_handle

    async def _set_variable(self, p: Dict[str, Any], tab_handle: TabHandle, variables: VariableStore) -> TabHandle:
        name = strip_sigil(p.get('variable'))
        if name in RESERVED_NAMES:
            logger.warning(f"Set Variable overwrites engine-managed variable '{name}'")
        variables.assign(name, p.get('value'))
        return tab_handle

    async def _get_tab_info(self, p: Dict[str, Any], tab_handle: TabHandle, variables: VariableStore) -> TabHandle:
        if tab_handle is None:
            return tab_handle
        tab = await self.host.get(tab_handle)
        info_type = normalize_choice(p.get('info_type'), 'url')
        if info_type == 'url':
            value = tab.url
        elif info_type == 'title':
            value = tab.title
        else:
            value = tab.id
        variables.assign(p.get('variable'), value)
        return tab_handle

    async def _screenshot(self, p: Dict[str, Any], tab_handle: TabHandle, variables: VariableStore) -> TabHandle:
        if tab_handle is not None:
            variables[SCREENSHOT_VAR] = await self.host.capture_visible(tab_handle)
        return tab_handle

    # === Page interactions (content capability) ===

    def _content_handler(self, action: ContentAction) -> Handler:
        async def handler(p: Dict[str, Any], tab_handle: TabHandle, variables: VariableStore) -> TabHandle:
            return await self.dispatcher.perform(tab_handle, action, p, variables)
        return handler
