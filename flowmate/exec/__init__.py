"""
Execution module for flowmate.
Handles single-block dispatch, content actions, element waits and retries.
"""

from .content import ContentDispatcher
from .retry import RetryPolicy
from .step_executor import StepExecutor, CONTENT_ACTIONS
from .wait import ElementWait, ElementWaitConfig, ElementWaitResult, wait_for_element, wait_for_tab_load

__all__ = [
    "ContentDispatcher",
    "RetryPolicy",
    "StepExecutor",
    "CONTENT_ACTIONS",
    "ElementWait",
    "ElementWaitConfig",
    "ElementWaitResult",
    "wait_for_element",
    "wait_for_tab_load",
]
