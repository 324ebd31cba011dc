"""
Run-scoped state shared by the runner and the control-flow handlers.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..flow import Flow
from ..variables.substitution import VariableStore
from .status import RunState, RunStatus, StatusSink


logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Cooperative stop signal for one run.

    Nothing is interrupted when the token is cancelled; the runner and the
    repeaters poll it before each block and before each iteration.
    """

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class RunContext:
    """
    Mutable state of one flow run, owned by the runner.

    Attributes:
        flow: Flow being run (never mutated)
        variables: Run variables, handed to handlers by reference
        token: Cancellation token for this run
        sink: Optional status callback
        total: Number of enabled blocks
        current: Number of blocks executed so far (never decreases)
        skip_remaining: Enabled blocks still to be skipped after a failed
            condition with a skip policy
    """
    flow: Flow
    variables: VariableStore = field(default_factory=VariableStore)
    token: CancellationToken = field(default_factory=CancellationToken)
    sink: Optional[StatusSink] = None
    total: int = 0
    current: int = 0
    skip_remaining: int = 0

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def emit(
        self,
        state: RunState,
        message: str,
        error: Optional[str] = None,
        block_icon: Optional[str] = None
    ) -> RunStatus:
        """
        Build a status event from the current counters and deliver it.

        Delivery is fire-and-forget: a sink that raises is logged and ignored.
        """
        status = RunStatus(
            state=state,
            flow_id=self.flow.id,
            flow_name=self.flow.name,
            total=self.total,
            current=self.current,
            message=message,
            error=error,
            block_icon=block_icon,
        )

        if self.sink is not None:
            try:
                self.sink(status)
            except Exception as e:
                logger.warning(f"Status sink raised while handling '{message}': {e}")

        return status
