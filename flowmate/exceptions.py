"""FlowMate exceptions."""

from typing import List, Optional
from dataclasses import dataclass


@dataclass
class ValidationError:
    """Single validation error."""
    message: str
    path: str = ""
    exit_code: int = 2


class FlowValidationError(Exception):
    """Raised when flow validation fails.

    This exception is raised by the loader when validation errors occur,
    allowing the CLI to catch it and map to appropriate exit codes.
    """

    def __init__(self, errors: List[ValidationError]):
        self.errors = errors
        self.exit_code = 2  # Default validation exit code

        messages = []
        for error in errors:
            if error.path:
                messages.append(f"Validation error at {error.path}: {error.message}")
            else:
                messages.append(f"Validation error: {error.message}")

        super().__init__("\n".join(messages))


class FlowmateError(Exception):
    """Base class for errors raised while running a flow."""


class InvalidStateError(FlowmateError):
    """The engine or the target tab is not in a state the block requires."""


class FlowAlreadyRunningError(InvalidStateError):
    """A run was requested while another run is active on the same engine."""

    def __init__(self, flow_name: Optional[str] = None):
        self.flow_name = flow_name
        if flow_name:
            super().__init__(f"A flow is already running: {flow_name}")
        else:
            super().__init__("A flow is already running")


class TabNotFoundError(InvalidStateError):
    """No open tab matched the requested query."""


class BlockParameterError(FlowmateError):
    """A block parameter is missing or unusable."""


class ElementError(FlowmateError):
    """Target element missing, hidden, or the in-page action reported an error.

    These are page-state or authoring problems and are never retried.
    """


class EmptyCollectionError(ElementError):
    """A for-each container matched no child items."""


class TransientDispatchError(FlowmateError):
    """The content capability could not be injected into the page.

    Typically raised while the page is mid-navigation; safe to retry.
    """


class StepTimeoutError(FlowmateError):
    """An operation exceeded its time budget."""

    def __init__(self, message: str, timeout_sec: Optional[float] = None):
        self.timeout_sec = timeout_sec
        super().__init__(message)


class BlockTimeoutError(StepTimeoutError):
    """A block (or a whole repeater) exceeded the per-block ceiling."""


class TabLoadTimeoutError(StepTimeoutError):
    """A tab did not report a completed load in time."""


class ElementTimeoutError(StepTimeoutError):
    """An element did not appear in time."""


class UnknownBlockTypeError(FlowmateError):
    """The block type tag is not part of the block vocabulary."""

    def __init__(self, block_type: str):
        self.block_type = block_type
        super().__init__(f"Block type '{block_type}' is not implemented")


class EmptyBodyError(FlowmateError):
    """A repeater has no blocks to repeat."""


class ConditionFailedError(FlowmateError):
    """A condition block failed and its policy is to stop the flow."""

    def __init__(self, reason: str):
        self.reason = reason
        message = "Condition not met"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
