"""Run status events delivered to the status sink."""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional


class RunState(str, Enum):
    """Lifecycle state carried by a status event."""
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not RunState.RUNNING


@dataclass(frozen=True)
class RunStatus:
    """
    One progress report for a flow run.

    Attributes:
        state: Current run state
        flow_id: Identifier of the running flow
        flow_name: Name of the running flow
        total: Number of enabled blocks in the flow
        current: Number of blocks executed so far
        message: Human-readable progress text
        error: Failure text, for error events
        block_icon: Icon of the block being executed, when there is one
    """
    state: RunState
    flow_id: str
    flow_name: str
    total: int
    current: int
    message: str
    error: Optional[str] = None
    block_icon: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['state'] = self.state.value
        return {k: v for k, v in data.items() if v is not None}


StatusSink = Callable[[RunStatus], None]
