"""Tests for single-block dispatch."""

import asyncio
import json
import logging
import time

import pytest

from flowmate.config import EngineConfig
from flowmate.exceptions import (
    BlockParameterError,
    ElementError,
    ElementTimeoutError,
    InvalidStateError,
    TabLoadTimeoutError,
    TabNotFoundError,
    TransientDispatchError,
    UnknownBlockTypeError,
)
from flowmate.exec.step_executor import StepExecutor
from flowmate.flow import Block, BlockType, CONTROL_TYPES
from flowmate.host.types import ContentAction, ContentResult
from flowmate.variables.substitution import VariableStore

from tests.fakes import FakeBrowser, FakeElement


FAST_CONFIG = EngineConfig(
    element_timeout_ms=100,
    element_poll_ms=10,
    retry_delay_ms=0,
    load_timeout_sec=0.2,
)


class StepExecutorTestBase:
    """Shared fixture: a fake browser with one open tab."""

    def setup_method(self):
        self.browser = FakeBrowser()
        self.tab = self.browser.open_tab("https://shop.example.com/cart", title="Cart")
        self.executor = StepExecutor(self.browser, self.browser, FAST_CONFIG)
        self.variables = VariableStore()

    def run_block(self, block_type, tab=None, enabled=True, **params):
        block = Block(type=block_type, params=params, enabled=enabled)
        handle = self.tab if tab is None else tab
        return asyncio.run(self.executor.execute_block(block, handle, self.variables))


class TestDispatchTable:
    """The handler table is closed over the block vocabulary."""

    def test_every_non_control_type_has_a_handler(self):
        """Every non-control block type has a handler."""
        executor = StepExecutor(FakeBrowser(), FakeBrowser())
        assert set(executor.handlers) | CONTROL_TYPES == set(BlockType)

    def test_unknown_type_raises_naming_the_type(self):
        """Unknown types raise an error naming the type."""
        executor = StepExecutor(FakeBrowser(), FakeBrowser())
        block = Block(type='teleport')

        with pytest.raises(UnknownBlockTypeError) as exc_info:
            asyncio.run(executor.execute_block(block, None, VariableStore()))

        assert 'teleport' in str(exc_info.value)

    def test_control_blocks_are_not_single_steps(self):
        """Control blocks cannot be dispatched as single steps."""
        executor = StepExecutor(FakeBrowser(), FakeBrowser())
        with pytest.raises(InvalidStateError):
            asyncio.run(executor.execute_block(Block(type='loop'), None, VariableStore()))


class TestNavigationBlocks(StepExecutorTestBase):
    """Navigation and tab management blocks."""

    def test_navigate_updates_current_tab(self):
        """Navigate loads the interpolated URL into the current tab."""
        self.variables['path'] = 'checkout'

        handle = self.run_block('navigate', url='https://shop.example.com/${path}')

        assert handle == self.tab
        assert self.browser.tabs[self.tab].url == 'https://shop.example.com/checkout'

    def test_navigate_without_tab_creates_one(self):
        """Navigate without a tab opens a new one."""
        block = Block(type='navigate', params={'url': 'https://example.org'})

        handle = asyncio.run(self.executor.execute_block(block, None, self.variables))

        assert handle != self.tab
        assert self.browser.tabs[handle].url == 'https://example.org'

    def test_navigate_requires_url(self):
        """Navigate without a URL raises a parameter error."""
        with pytest.raises(BlockParameterError):
            self.run_block('navigate', url='')

    def test_navigate_load_timeout(self):
        """Navigate fails when the page never finishes loading."""
        self.browser.never_load = True
        with pytest.raises(TabLoadTimeoutError):
            self.run_block('navigate', url='https://slow.example.com')

    def test_new_tab_becomes_current(self):
        """A new tab becomes the current tab."""
        handle = self.run_block('new_tab', url='https://news.example.com')

        assert handle != self.tab
        assert self.browser.active == handle
        assert ('create', 'https://news.example.com') in self.browser.calls

    def test_new_tab_defaults_to_blank(self):
        """A new tab without a URL opens about:blank."""
        handle = self.run_block('new_tab')
        assert self.browser.tabs[handle].url == 'about:blank'

    def test_new_tab_inactive(self):
        """A new tab can open in the background."""
        handle = self.run_block('new_tab', url='https://a.example.com', active='false')
        assert self.browser.active == self.tab
        assert handle != self.tab

    def test_activate_tab_contains_match(self):
        """Activate tab matches title or URL case-insensitively."""
        other = self.browser.open_tab("https://mail.example.com/inbox", title="Inbox (3)", active=False)

        handle = self.run_block('activate_tab', query='INBOX')

        assert handle == other
        assert self.browser.active == other

    def test_activate_tab_exact_match(self):
        """Exact matching does not accept partial titles."""
        self.browser.open_tab("https://mail.example.com/inbox", title="Inbox (3)", active=False)

        with pytest.raises(TabNotFoundError) as exc_info:
            self.run_block('activate_tab', query='inbox', match_type='exact')
        assert 'inbox' in str(exc_info.value)

    def test_switch_tab_wraps_around(self):
        """Switching tabs wraps around in both directions."""
        second = self.browser.open_tab("https://b.example.com", active=False)

        assert self.run_block('switch_tab', tab=second, direction='next') == self.tab
        assert self.run_block('switch_tab', tab=self.tab, direction='previous') == second
        assert self.run_block('switch_tab', tab=self.tab) == second

    def test_switch_tab_requires_tab(self):
        """Switching tabs needs a current tab."""
        block = Block(type='switch_tab')
        with pytest.raises(InvalidStateError):
            asyncio.run(self.executor.execute_block(block, None, self.variables))

    def test_close_current_tab_returns_active_remaining(self):
        """Closing the current tab returns the active remaining one."""
        other = self.browser.open_tab("https://b.example.com", active=False)

        handle = self.run_block('close_tab')

        assert self.tab not in self.browser.tabs
        assert handle == other

    def test_close_last_tab_returns_none(self):
        """Closing the last tab leaves no current tab."""
        assert self.run_block('close_tab') is None

    def test_close_other_tabs(self):
        """Closing others keeps only the current tab."""
        self.browser.open_tab("https://b.example.com", active=False)
        self.browser.open_tab("https://c.example.com", active=False)

        handle = self.run_block('close_tab', target='others')

        assert handle == self.tab
        assert list(self.browser.tabs) == [self.tab]

    def test_pin_and_mute(self):
        """Pin and mute actions update the tab flags."""
        self.run_block('pin_tab', action='pin')
        self.run_block('mute_tab', action='unmute')

        assert ('update', (self.tab, None, None, True, None)) in self.browser.calls
        assert ('update', (self.tab, None, None, None, False)) in self.browser.calls

    def test_refresh_reloads(self):
        """Refresh reloads the current tab."""
        self.run_block('refresh')
        assert ('reload', self.tab) in self.browser.calls

    def test_tab_blocks_without_tab_are_no_ops(self):
        """Tab blocks without a tab do nothing."""
        block = Block(type='refresh')
        assert asyncio.run(self.executor.execute_block(block, None, self.variables)) is None
        assert self.browser.calls == []


class TestDataBlocks(StepExecutorTestBase):
    """Wait, variable and capture blocks."""

    def test_wait_duration(self):
        """Wait sleeps for the given milliseconds."""
        start = time.monotonic()
        self.run_block('wait', duration='50')
        assert time.monotonic() - start >= 0.045

    def test_wait_negative_is_clamped(self):
        """Negative durations do not wait."""
        start = time.monotonic()
        self.run_block('wait', duration=-500)
        assert time.monotonic() - start < 0.5

    def test_wait_unparseable_uses_default(self):
        """Unparseable durations use the default wait."""
        config = EngineConfig(default_wait_ms=20)
        executor = StepExecutor(self.browser, self.browser, config)
        block = Block(type='wait', params={'duration': 'soon'})

        start = time.monotonic()
        asyncio.run(executor.execute_block(block, self.tab, self.variables))
        assert time.monotonic() - start >= 0.015

    def test_set_variable(self):
        """Set variable stores the interpolated value under the bare name."""
        self.variables['first'] = 'Ada'
        self.run_block('set_variable', variable='*greeting', value='Hello ${first}')
        assert self.variables['greeting'] == 'Hello Ada'

    def test_set_variable_warns_on_engine_names(self, caplog):
        """Writing an engine-managed name is allowed but logged."""
        with caplog.at_level(logging.WARNING, logger='flowmate.exec.step_executor'):
            self.run_block('set_variable', variable='*_index', value='7')

        assert self.variables['_index'] == '7'
        assert "engine-managed variable '_index'" in caplog.text

    def test_set_variable_plain_name_does_not_warn(self, caplog):
        """Ordinary names are stored without a warning."""
        with caplog.at_level(logging.WARNING, logger='flowmate.exec.step_executor'):
            self.run_block('set_variable', variable='index', value='7')
        assert caplog.records == []

    @pytest.mark.parametrize("info_type,expected", [
        ('url', 'https://shop.example.com/cart'),
        ('title', 'Cart'),
    ])
    def test_get_tab_info(self, info_type, expected):
        """Tab info stores the URL or title."""
        self.run_block('get_tab_info', info_type=info_type, variable='info')
        assert self.variables['info'] == expected

    def test_get_tab_info_id(self):
        """Any other info type stores the tab id."""
        self.run_block('get_tab_info', info_type='id', variable='info')
        assert self.variables['info'] == self.tab

    def test_screenshot_stored_under_reserved_name(self):
        """Screenshots are stored under the reserved name."""
        self.run_block('screenshot')
        assert self.variables['_screenshot'] == f"data:image/png;base64,tab{self.tab}"


class TestContentBlocks(StepExecutorTestBase):
    """Blocks delegated to the content capability."""

    def setup_method(self):
        super().setup_method()
        self.browser.elements.update({
            '#title': FakeElement(text="  Spring Sale Today  "),
            '#link': FakeElement(attributes={'href': '/sale'}),
            '#hidden': FakeElement(text="secret", visible=False),
            '#prices': FakeElement(headers=['Item', 'Price'], rows=[['Pen', '2'], ['Ink', '5']]),
            '#empty': FakeElement(headers=['Item']),
            '#q': FakeElement(),
        })

    def test_click_interpolates_selector(self):
        """Selectors are interpolated before dispatch."""
        self.variables['target'] = '#q'
        self.run_block('click', selector='${target}')

        assert self.browser.actions_of(ContentAction.CLICK) == [{'selector': '#q'}]

    def test_selector_actions_wait_for_element_first(self):
        """Selector actions poll for the element before acting."""
        self.run_block('type', selector='#q', text='shoes', clear=True)

        kinds = [action for action, _ in self.browser.actions]
        assert kinds == [ContentAction.EXISTS, ContentAction.TYPE]

    def test_missing_element_times_out(self):
        """A missing element times out."""
        with pytest.raises(ElementTimeoutError):
            self.run_block('click', selector='#nope')

    def test_hidden_element_fails_without_retry(self):
        """A hidden element fails once and is not retried."""
        with pytest.raises(ElementError) as exc_info:
            self.run_block('click', selector='#hidden')

        assert 'not visible' in str(exc_info.value)
        assert len(self.browser.actions_of(ContentAction.CLICK)) == 1

    def test_read_attribute_allowed_on_hidden_element(self):
        """Attributes can be read from hidden elements."""
        self.browser.elements['#hidden'].attributes['data-id'] = '7'
        self.run_block('read_attribute', selector='#hidden', attribute='data-id', variable='id')
        assert self.variables['id'] == '7'

    def test_read_attribute_missing_stores_none(self):
        """A missing attribute overwrites the target with null, rendered as empty."""
        self.variables['href'] = '/stale'
        self.run_block('read_attribute', selector='#link', attribute='title', variable='href')
        assert 'href' in self.variables
        assert self.variables['href'] is None
        assert self.variables.interpolate('[${href}]') == '[]'

    def test_actions_without_data_store_nothing(self):
        """Actions that produce no value leave the target untouched."""
        self.variables['out'] = 'kept'
        self.run_block('click', selector='#q', variable='out')
        assert self.variables['out'] == 'kept'

    def test_result_data_presence(self):
        """Results tell a null value apart from no value."""
        assert ContentResult.from_dict({'success': True, 'data': None}).has_data is True
        assert ContentResult.from_dict({'success': True}).has_data is False
        assert ContentResult(success=True, data='x').has_data is True
        assert ContentResult(success=True).has_data is False

    def test_read_text_word_index(self):
        """Read text can select a single word."""
        self.run_block('read_text', selector='#title', word_index='2', variable='*word')
        assert self.variables['word'] == 'Sale'

    def test_read_text_word_range(self):
        """Read text can select a word range."""
        self.run_block('read_text', selector='#title', word_index='1-2', variable='words')
        assert self.variables['words'] == 'Spring Sale'

    def test_read_text_out_of_range(self):
        """An out-of-range word index stores an empty string."""
        self.run_block('read_text', selector='#title', word_index='9', variable='words')
        assert self.variables['words'] == ''

    def test_read_text_without_variable_stores_nothing(self):
        """Read text without a target stores nothing."""
        self.run_block('read_text', selector='#title')
        assert dict(self.variables) == {}

    def test_read_table_stored_as_json(self):
        """Tables are stored as JSON row objects."""
        self.run_block('read_table', selector='#prices', variable='table')
        assert json.loads(self.variables['table']) == [
            {'Item': 'Pen', 'Price': '2'},
            {'Item': 'Ink', 'Price': '5'},
        ]

    def test_read_empty_table(self):
        """An empty table is stored as an empty JSON list."""
        self.run_block('read_table', selector='#empty', variable='table')
        assert self.variables['table'] == '[]'

    def test_wait_for_element_uses_block_timeout(self):
        """Wait for element uses the block's own timeout."""
        config = EngineConfig(element_timeout_ms=5000, element_poll_ms=10)
        executor = StepExecutor(self.browser, self.browser, config)
        block = Block(type='wait_for_element', params={'selector': '#late', 'timeout': '60'})

        start = time.monotonic()
        with pytest.raises(ElementTimeoutError):
            asyncio.run(executor.execute_block(block, self.tab, self.variables))
        assert time.monotonic() - start < 1

    def test_keyboard_without_selector(self):
        """Keyboard actions work without a selector."""
        self.run_block('keyboard', key='Enter', modifier='ctrl')
        assert self.browser.actions_of(ContentAction.KEYBOARD) == [{'key': 'Enter', 'modifier': 'ctrl'}]

    def test_content_block_requires_tab(self):
        """Content blocks need a tab."""
        block = Block(type='click', params={'selector': '#q'})
        with pytest.raises(InvalidStateError):
            asyncio.run(self.executor.execute_block(block, None, self.variables))

    def test_transient_failures_are_retried(self):
        """Transient dispatch failures are retried."""
        self.browser.transient_failures = 2
        self.run_block('scroll', amount='300', direction='down')
        assert len(self.browser.actions_of(ContentAction.SCROLL)) == 3

    def test_transient_failures_surface_after_retries(self):
        """Transient failures surface once retries are used."""
        self.browser.transient_failures = 3
        with pytest.raises(TransientDispatchError):
            self.run_block('scroll', amount='300')
        assert len(self.browser.actions_of(ContentAction.SCROLL)) == 3

    def test_missing_result_is_transient(self):
        """A missing result is treated as a transient failure."""
        self.browser.none_results = 1
        self.run_block('scroll', amount='100')
        assert len(self.browser.actions_of(ContentAction.SCROLL)) == 2
