"""Flow execution module."""

from .conditions import ConditionEvaluator, ConditionResult, FailurePolicy
from .context import CancellationToken, RunContext
from .control import BodyRange, ControlFlow, ForEachHandler, LoopHandler, RepeaterResult, compute_body
from .runner import FlowEngine
from .status import RunState, RunStatus, StatusSink

__all__ = [
    'FlowEngine',
    'RunState',
    'RunStatus',
    'StatusSink',
    'RunContext',
    'CancellationToken',
    'ConditionEvaluator',
    'ConditionResult',
    'FailurePolicy',
    'ControlFlow',
    'LoopHandler',
    'ForEachHandler',
    'RepeaterResult',
    'BodyRange',
    'compute_body',
]
