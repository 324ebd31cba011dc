"""
Condition evaluation for condition blocks.
Checks one element against visible/hidden/contains/equals and reports why it failed.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..config import EngineConfig
from ..exceptions import InvalidStateError
from ..exec.content import ContentDispatcher
from ..host.types import ContentAction, ElementFacts, TabHandle


logger = logging.getLogger(__name__)

CHECK_TYPES = ('visible', 'hidden', 'contains', 'equals')


@dataclass(frozen=True)
class ConditionResult:
    """Outcome of a condition check."""
    passed: bool
    reason: str = ""


@dataclass(frozen=True)
class FailurePolicy:
    """
    What the runner does when a condition fails.

    skip_count of None means stop the flow; otherwise that many following
    enabled blocks are skipped.
    """
    skip_count: Optional[int] = None

    @property
    def stops(self) -> bool:
        return self.skip_count is None

    _SKIP_PATTERN = re.compile(r'^skip(?:[\s:_-]*(\d+))?$')

    @classmethod
    def parse(cls, value: Any) -> 'FailurePolicy':
        """
        Parse an on_fail parameter: "stop" (default), "skip" or "skip N".

        Unrecognised values fall back to stopping.
        """
        if value is None:
            return cls()
        text = str(value).strip().lower()
        match = cls._SKIP_PATTERN.match(text)
        if not match:
            if text and text != 'stop':
                logger.warning(f"Unknown on_fail policy '{value}', stopping on failure")
            return cls()
        count = int(match.group(1)) if match.group(1) else 1
        return cls(skip_count=count)


class ConditionEvaluator:
    """
    Evaluates condition blocks against the live page.

    Supports:
    - visible: element exists and has a visible box
    - hidden: no element matches the selector
    - contains: element text contains value
    - equals: element text equals value exactly
    """

    def __init__(self, dispatcher: ContentDispatcher, config: Optional[EngineConfig] = None):
        """
        Initialize the condition evaluator.

        Args:
            dispatcher: Content dispatcher used to inspect elements
            config: Engine configuration (display text limit)
        """
        self.dispatcher = dispatcher
        self.config = config or EngineConfig()

    async def evaluate(self, params: Dict[str, Any], tab_handle: TabHandle) -> ConditionResult:
        """
        Evaluate a condition block's (interpolated) parameters.

        Args:
            params: Block parameters: selector, check, value
            tab_handle: Tab to inspect

        Returns:
            ConditionResult with a reason when the check failed

        Raises:
            InvalidStateError: If there is no tab to inspect
        """
        if tab_handle is None:
            raise InvalidStateError("Condition check requires an active tab")

        selector = str(params.get('selector') or '')
        check = str(params.get('check') or '').strip().lower()
        expected = '' if params.get('value') is None else str(params.get('value'))

        if check not in CHECK_TYPES:
            return ConditionResult(False, f"Unknown check type: {check}")

        facts = await self._inspect(tab_handle, selector)

        if check == 'hidden':
            return ConditionResult(not facts.found, "Element is still present" if facts.found else "")

        if not facts.found:
            return ConditionResult(False, f"Element not found: {selector}")

        if check == 'visible':
            return ConditionResult(facts.visible, "" if facts.visible else "Element is not visible")

        text = facts.text.strip()
        if check == 'contains':
            passed = expected in text
            return ConditionResult(passed, "" if passed else f'Text does not contain "{expected}"')

        passed = text == expected
        shown = text[:self.config.display_text_limit]
        return ConditionResult(passed, "" if passed else f'Expected: "{expected}", Found: "{shown}"')

    async def _inspect(self, tab_handle: TabHandle, selector: str) -> ElementFacts:
        if not selector:
            return ElementFacts(found=False)
        result = await self.dispatcher.query(tab_handle, ContentAction.INSPECT, {'selector': selector})
        return ElementFacts.from_data(result.data)
