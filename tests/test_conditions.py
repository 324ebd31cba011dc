"""Tests for condition evaluation and on_fail policies."""

import asyncio

import pytest

from flowmate.config import EngineConfig
from flowmate.exceptions import InvalidStateError
from flowmate.exec.content import ContentDispatcher
from flowmate.host.types import ContentAction
from flowmate.workflow.conditions import ConditionEvaluator, FailurePolicy

from tests.fakes import FakeBrowser, FakeElement


class TestConditionEvaluator:
    """Test element checks."""

    def setup_method(self):
        self.browser = FakeBrowser({
            '#banner': FakeElement(text="  Welcome back, Ada  "),
            '#modal': FakeElement(text="Cookies", visible=False),
            '#long': FakeElement(text="x" * 200),
        })
        self.tab = self.browser.open_tab()
        self.evaluator = ConditionEvaluator(ContentDispatcher(self.browser))

    def evaluate(self, tab=None, **params):
        return asyncio.run(self.evaluator.evaluate(params, self.tab if tab is None else tab))

    def test_visible_passes(self):
        """A visible element passes the visible check."""
        result = self.evaluate(selector='#banner', check='visible')
        assert result.passed is True
        assert result.reason == ""

    def test_visible_fails_for_hidden_element(self):
        """A hidden element fails the visible check."""
        result = self.evaluate(selector='#modal', check='visible')
        assert result.passed is False
        assert result.reason == "Element is not visible"

    def test_visible_fails_for_missing_element(self):
        """A missing element fails with the selector in the reason."""
        result = self.evaluate(selector='#gone', check='visible')
        assert result.passed is False
        assert result.reason == "Element not found: #gone"

    def test_hidden_means_absent(self):
        """The hidden check passes only when the element is absent."""
        assert self.evaluate(selector='#gone', check='hidden').passed is True

        result = self.evaluate(selector='#modal', check='hidden')
        assert result.passed is False
        assert result.reason == "Element is still present"

    def test_contains(self):
        """Contains matches a substring of the element text."""
        assert self.evaluate(selector='#banner', check='contains', value='Ada').passed is True

        result = self.evaluate(selector='#banner', check='contains', value='Bob')
        assert result.passed is False
        assert result.reason == 'Text does not contain "Bob"'

    def test_equals_compares_trimmed_text(self):
        """Equals compares against the trimmed element text."""
        assert self.evaluate(selector='#banner', check='equals', value='Welcome back, Ada').passed is True

        result = self.evaluate(selector='#banner', check='equals', value='Welcome')
        assert result.passed is False
        assert result.reason == 'Expected: "Welcome", Found: "Welcome back, Ada"'

    def test_equals_reason_truncates_found_text(self):
        """The found text quoted in the reason is truncated."""
        result = self.evaluate(selector='#long', check='equals', value='y')
        assert result.reason == f'Expected: "y", Found: "{"x" * 80}"'

    def test_unknown_check(self):
        """Unknown check types fail with a reason naming them."""
        result = self.evaluate(selector='#banner', check='glows')
        assert result.passed is False
        assert result.reason == "Unknown check type: glows"

    def test_requires_tab_and_does_not_touch_page(self):
        """Evaluating without a tab raises before any page access."""
        with pytest.raises(InvalidStateError):
            asyncio.run(self.evaluator.evaluate({'selector': '#banner', 'check': 'visible'}, None))
        assert self.browser.actions == []

    def test_inspects_once_without_waiting(self):
        """A condition inspects the page once and never polls."""
        self.evaluate(selector='#gone', check='visible')
        assert [action for action, _ in self.browser.actions] == [ContentAction.INSPECT]

    def test_truncation_limit_is_configurable(self):
        """The truncation limit comes from the engine config."""
        evaluator = ConditionEvaluator(ContentDispatcher(self.browser), EngineConfig(display_text_limit=5))
        result = asyncio.run(evaluator.evaluate({'selector': '#long', 'check': 'equals', 'value': ''}, self.tab))
        assert result.reason == 'Expected: "", Found: "xxxxx"'


class TestFailurePolicy:
    """Test on_fail parsing."""

    @pytest.mark.parametrize("value", [None, "", "stop", "STOP", "explode"])
    def test_stop_policies(self, value):
        """Empty, stop and unknown on_fail values stop the flow."""
        assert FailurePolicy.parse(value).stops is True

    @pytest.mark.parametrize("value,count", [
        ("skip", 1),
        ("skip 2", 2),
        ("skip:3", 3),
        ("Skip 10", 10),
    ])
    def test_skip_policies(self, value, count):
        """Skip policies parse their block count, defaulting to 1."""
        policy = FailurePolicy.parse(value)
        assert policy.stops is False
        assert policy.skip_count == count
