"""
Playwright-backed tab host and content capability.

Drives a Chromium context: each page is a tab, addressed by an integer
handle. DOM actions run as one injected script per call; word extraction and
table serialisation happen on the Python side.
"""

import base64
import logging
from typing import Any, Dict, List, Optional, Sequence

from playwright.async_api import Browser, BrowserContext, Error as PlaywrightError, Page, Playwright, async_playwright

from ..exceptions import InvalidStateError, TransientDispatchError
from ..exec.params import parse_bool
from .extract import extract_words, serialize_table
from .types import VISIBILITY_EXEMPT, ContentAction, ContentResult, TabHandle, TabInfo


logger = logging.getLogger(__name__)

# Single window: every page of the context belongs to it
WINDOW_ID = 1

PAGE_SCRIPT = """
({action, params, exempt}) => {
    const p = params || {};
    const el = p.selector ? document.querySelector(p.selector) : null;
    const isVisible = (node) => {
        const rect = node.getBoundingClientRect();
        return rect.width > 0 && rect.height > 0 &&
            window.getComputedStyle(node).visibility !== 'hidden';
    };
    const textOf = (node) => (node.innerText || node.textContent || node.value || '').trim();
    const mouse = (node, types) => types.forEach(type => node.dispatchEvent(
        new MouseEvent(type, {bubbles: true, cancelable: true, view: window, buttons: 1})));

    switch (action) {
        case 'exists':
            return {success: true, data: !!el};
        case 'inspect':
            return {success: true, data: {found: !!el, visible: !!el && isVisible(el), text: el ? textOf(el) : ''}};
        case 'count': {
            const container = document.querySelector(p.selector);
            if (!container) return {error: `List not found: ${p.selector}`};
            return {success: true, data: container.querySelectorAll(p.child_selector || 'li').length};
        }
    }

    if (p.selector && !el && action !== 'wait_for_element') {
        return {error: `Element not found: ${p.selector}`};
    }
    if (el && !exempt.includes(action)) {
        if (!isVisible(el)) return {error: 'Element is not visible (hidden)'};
        el.scrollIntoView({behavior: 'auto', block: 'center'});
    }

    try {
        switch (action) {
            case 'click':
                mouse(el, ['mousedown', 'mouseup', 'click']);
                return {success: true};
            case 'type': {
                mouse(el, ['mousedown', 'mouseup', 'click']);
                el.focus();
                const text = p.text == null ? '' : String(p.text);
                const before = el.value !== undefined ? el.value : el.innerText;
                const next = p.clear ? text : (before || '') + text;
                if (el.isContentEditable) {
                    el.innerText = next;
                } else {
                    const proto = el instanceof HTMLTextAreaElement ?
                        HTMLTextAreaElement.prototype : HTMLInputElement.prototype;
                    const setter = Object.getOwnPropertyDescriptor(proto, 'value')?.set;
                    if (setter) setter.call(el, next); else el.value = next;
                }
                ['keydown', 'keypress', 'input', 'keyup', 'change'].forEach(
                    type => el.dispatchEvent(new Event(type, {bubbles: true})));
                const after = el.value !== undefined ? el.value : el.innerText;
                return {success: true, verified: (after || '').includes(text)};
            }
            case 'select': {
                const wanted = p.value == null ? '' : String(p.value);
                if (el.tagName === 'SELECT') {
                    Array.from(el.options).forEach(opt => {
                        if (opt.value === wanted || opt.text === wanted) {
                            opt.selected = true;
                            el.value = opt.value;
                        }
                    });
                } else {
                    el.value = wanted;
                }
                el.dispatchEvent(new Event('input', {bubbles: true}));
                el.dispatchEvent(new Event('change', {bubbles: true}));
                return {success: true};
            }
            case 'hover':
                mouse(el, ['mouseenter', 'mouseover', 'mousemove']);
                return {success: true};
            case 'scroll': {
                const amount = parseInt(p.amount, 10) || 500;
                const top = p.direction === 'up' ? -amount : amount;
                (el || window).scrollBy({top: top, behavior: 'auto'});
                return {success: true};
            }
            case 'read_text':
                return {success: true, data: textOf(el)};
            case 'read_attribute':
                return {success: true, data: el.getAttribute(p.attribute)};
            case 'read_table': {
                const table = el.tagName === 'TABLE' ? el : el.querySelector('table') || el;
                const headerCells = table.querySelectorAll('thead th, tr:first-child th');
                const headers = Array.from(headerCells).map(th => th.innerText.trim());
                const rows = Array.from(table.querySelectorAll('tr'))
                    .filter(tr => tr.querySelector('td'))
                    .map(tr => Array.from(tr.querySelectorAll('td')).map(td => td.innerText.trim()));
                return {success: true, data: {headers: headers, rows: rows}};
            }
            case 'wait_for_element':
                return {success: !!el};
            case 'keyboard': {
                const modifier = (p.modifier || '').toLowerCase();
                const init = {
                    key: p.key, code: p.key, bubbles: true,
                    ctrlKey: modifier === 'ctrl', shiftKey: modifier === 'shift', altKey: modifier === 'alt'
                };
                const target = el || document.activeElement || document;
                target.dispatchEvent(new KeyboardEvent('keydown', init));
                target.dispatchEvent(new KeyboardEvent('keyup', init));
                return {success: true};
            }
            default:
                return {success: false, error: `Unknown action: ${action}`};
        }
    } catch (e) {
        return {error: e.message};
    }
}
"""


class PlaywrightHost:
    """
    TabHost and ContentCapability over a Playwright Chromium context.

    Use as an async context manager:

        async with PlaywrightHost(headless=True) as host:
            await FlowEngine(host, host).run(flow)
    """

    def __init__(self, headless: bool = True):
        self.headless = headless
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._pages: Dict[int, Page] = {}
        self._next_handle = 1
        self._active: Optional[int] = None

    async def start(self) -> "PlaywrightHost":
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self.headless)
        self._context = await self._browser.new_context()
        logger.info(f"Browser started (headless={self.headless})")
        return self

    async def close(self) -> None:
        if self._context is not None:
            await self._context.close()
        if self._browser is not None:
            await self._browser.close()
        if self._playwright is not None:
            await self._playwright.stop()
        self._pages.clear()
        self._context = self._browser = self._playwright = None
        self._active = None

    async def __aenter__(self) -> "PlaywrightHost":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _page(self, handle: TabHandle) -> Page:
        page = self._pages.get(handle)
        if page is None or page.is_closed():
            raise InvalidStateError(f"Tab {handle} is not open")
        return page

    # === TabHost ===

    async def create(self, url: str, active: bool = True) -> TabHandle:
        if self._context is None:
            raise InvalidStateError("Browser is not started")
        page = await self._context.new_page()
        handle = self._next_handle
        self._next_handle += 1
        self._pages[handle] = page
        if url and url != 'about:blank':
            await page.goto(url, wait_until='commit')
        if active or self._active is None:
            await page.bring_to_front()
            self._active = handle
        return handle

    async def update(
        self,
        handle: TabHandle,
        *,
        url: Optional[str] = None,
        active: Optional[bool] = None,
        pinned: Optional[bool] = None,
        muted: Optional[bool] = None,
    ) -> None:
        page = self._page(handle)
        if url is not None:
            await page.goto(url, wait_until='commit')
        if active:
            await page.bring_to_front()
            self._active = handle
        if pinned is not None or muted is not None:
            logger.debug(f"Pin/mute are not supported by Playwright pages (tab {handle})")

    async def get(self, handle: TabHandle) -> TabInfo:
        page = self._page(handle)
        return TabInfo(
            id=handle,
            url=page.url,
            title=await page.title(),
            window_id=WINDOW_ID,
            index=list(self._pages).index(handle),
            active=handle == self._active,
        )

    async def reload(self, handle: TabHandle) -> None:
        await self._page(handle).reload(wait_until='commit')

    async def remove(self, handles: Sequence[TabHandle]) -> None:
        for handle in handles:
            page = self._pages.pop(handle, None)
            if page is not None and not page.is_closed():
                await page.close()
        if self._active not in self._pages:
            self._active = next(reversed(list(self._pages)), None)
            if self._active is not None:
                await self._pages[self._active].bring_to_front()

    async def query(self, window_id: Any = None, active: Optional[bool] = None) -> List[TabInfo]:
        tabs = [await self.get(handle) for handle in list(self._pages)]
        if window_id is not None:
            tabs = [t for t in tabs if t.window_id == window_id]
        if active is not None:
            tabs = [t for t in tabs if t.active == active]
        return tabs

    async def capture_visible(self, handle: TabHandle) -> str:
        png = await self._page(handle).screenshot(type='png')
        return 'data:image/png;base64,' + base64.b64encode(png).decode('ascii')

    async def wait_for_load(self, handle: TabHandle) -> None:
        await self._page(handle).wait_for_load_state('load')

    # === ContentCapability ===

    async def execute_in_page(
        self,
        handle: TabHandle,
        action: ContentAction,
        params: Dict[str, Any],
    ) -> ContentResult:
        page = self._page(handle)
        if action == ContentAction.TYPE:
            params = dict(params, clear=parse_bool(params.get('clear')))
        payload = {
            'action': action.value,
            'params': params,
            'exempt': [a.value for a in VISIBILITY_EXEMPT],
        }
        try:
            raw = await page.evaluate(PAGE_SCRIPT, payload)
        except PlaywrightError as e:
            raise TransientDispatchError(f"Script could not run in tab {handle}: {e}")

        result = ContentResult.from_dict(raw or {})
        if result.error:
            return result

        if action == ContentAction.READ_TEXT:
            result.data = extract_words(result.data or '', params.get('word_index'))
        elif action == ContentAction.READ_TABLE and isinstance(result.data, dict):
            result.data = serialize_table(result.data.get('headers'), result.data.get('rows') or [])
        return result
