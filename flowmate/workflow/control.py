"""
Control-flow execution: condition policies, repeater bodies, loop and for-each.

A repeater owns the contiguous run of blocks after it, up to the next
repeater or the end of the flow. Bodies are resolved once per invocation as a
BodyRange; a repeater never contains another repeater.
"""

import copy
import functools
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from ..config import EngineConfig
from ..exceptions import ConditionFailedError, ElementError, EmptyBodyError, EmptyCollectionError, InvalidStateError
from ..exec.params import parse_int
from ..exec.step_executor import StepExecutor
from ..flow import Block, BlockType, block_meta
from ..host.types import ContentAction, TabHandle
from ..variables.substitution import INDEX_VAR, ITEM_SELECTOR_VAR, ITERATION_VAR, SIGIL
from .conditions import ConditionEvaluator, FailurePolicy
from .context import RunContext
from .status import RunState


logger = logging.getLogger(__name__)

# Parameter value rewritten to the current item's selector inside a for-each body
ITEM_SENTINEL = SIGIL + "item"


@dataclass(frozen=True)
class BodyRange:
    """Half-open index range [start, end) of a repeater's body in the block list."""
    start: int
    end: int

    @property
    def last_index(self) -> int:
        return self.end - 1

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    def __len__(self) -> int:
        return max(0, self.end - self.start)

    def select(self, blocks: Sequence[Block]) -> List[Block]:
        return list(blocks[self.start:self.end])

    @classmethod
    def after(cls, blocks: Sequence[Block], repeater_index: int) -> 'BodyRange':
        """Range of blocks following repeater_index up to the next repeater (may be empty)."""
        start = repeater_index + 1
        end = start
        while end < len(blocks) and not blocks[end].is_repeater:
            end += 1
        return cls(start, end)


def compute_body(blocks: Sequence[Block], repeater_index: int) -> BodyRange:
    """
    Resolve the body of the repeater at repeater_index.

    Raises:
        EmptyBodyError: If the repeater is followed by another repeater or
            by the end of the flow
    """
    body = BodyRange.after(blocks, repeater_index)
    if body.is_empty:
        label = blocks[repeater_index].label
        raise EmptyBodyError(f"{label} has no blocks below it to repeat")
    return body


def bind_item(block: Block, item_selector: str) -> Block:
    """
    Return an independent copy of block with every parameter equal to the
    item sentinel replaced by item_selector.
    """
    bound = copy.deepcopy(block)
    bound.params = {
        key: item_selector if value == ITEM_SENTINEL else value
        for key, value in bound.params.items()
    }
    return bound


@dataclass
class RepeaterResult:
    """
    Outcome of a repeater.

    Attributes:
        tab_handle: Tab handle after the last executed body block
        last_index: Index of the last body block; the scan resumes after it
        iterations: Number of iterations that ran to completion
    """
    tab_handle: TabHandle
    last_index: int
    iterations: int = 0


class ControlFlow:
    """
    Executes single blocks on behalf of the runner and the repeaters.

    Condition blocks are evaluated here and their failure policy applied;
    every other non-repeater block goes to the step executor.
    """

    def __init__(self, step_executor: StepExecutor, evaluator: ConditionEvaluator):
        self.step_executor = step_executor
        self.evaluator = evaluator

    async def run_block(self, block: Block, tab_handle: TabHandle, ctx: RunContext) -> TabHandle:
        """Run one non-repeater block and return the resulting tab handle."""
        if block.block_type == BlockType.CONDITION:
            await self.run_condition(block, tab_handle, ctx)
            return tab_handle
        return await self.step_executor.execute_block(block, tab_handle, ctx.variables)

    async def run_condition(self, block: Block, tab_handle: TabHandle, ctx: RunContext) -> None:
        """
        Evaluate a condition block and apply its on_fail policy.

        Raises:
            ConditionFailedError: If the check failed and the policy is stop
        """
        params = ctx.variables.interpolate_params(block.params or {})
        result = await self.evaluator.evaluate(params, tab_handle)
        if result.passed:
            logger.debug(f"Condition passed: {params.get('check')} {params.get('selector')}")
            return

        policy = FailurePolicy.parse(params.get('on_fail'))
        if policy.stops:
            raise ConditionFailedError(result.reason)

        logger.info(f"Condition not met ({result.reason}), skipping next {policy.skip_count} block(s)")
        ctx.skip_remaining = policy.skip_count

    async def run_body(
        self,
        blocks: Sequence[Block],
        tab_handle: TabHandle,
        ctx: RunContext,
        transform: Optional[Callable[[Block], Block]] = None
    ) -> TabHandle:
        """
        Run one pass over a repeater body.

        Cancellation is checked before every block. Skips requested by a
        condition inside the body end with the pass.
        """
        try:
            for block in blocks:
                if ctx.cancelled:
                    break
                if not block.enabled:
                    continue
                if ctx.skip_remaining > 0:
                    ctx.skip_remaining -= 1
                    logger.info(f"Skipping {block.label} (condition not met)")
                    continue
                if transform is not None:
                    block = transform(block)
                tab_handle = await self.run_block(block, tab_handle, ctx)
        finally:
            ctx.skip_remaining = 0
        return tab_handle


class LoopHandler:
    """Repeats a body a fixed number of times."""

    def __init__(self, control: ControlFlow, config: Optional[EngineConfig] = None):
        self.control = control
        self.config = config or EngineConfig()

    def iteration_count(self, raw_count) -> int:
        count = parse_int(raw_count, self.config.default_loop_count)
        if count is None or count < 1:
            return self.config.default_loop_count
        return count

    async def execute(self, ctx: RunContext, index: int, tab_handle: TabHandle) -> RepeaterResult:
        """
        Run the loop block at index.

        Args:
            ctx: Run context
            index: Position of the loop block in the flow
            tab_handle: Current tab

        Returns:
            RepeaterResult pointing at the last body block

        Raises:
            EmptyBodyError: If there is nothing to repeat
        """
        blocks = ctx.flow.blocks
        loop_block = blocks[index]
        params = ctx.variables.interpolate_params(loop_block.params or {})
        count = self.iteration_count(params.get('count'))

        body = compute_body(blocks, index)
        body_blocks = body.select(blocks)
        icon = block_meta(loop_block.type).icon

        completed = 0
        for iteration in range(1, count + 1):
            if ctx.cancelled:
                break
            ctx.variables[ITERATION_VAR] = iteration
            ctx.emit(RunState.RUNNING, f"🔁 Loop {iteration}/{count}...", block_icon=icon)

            tab_handle = await self.control.run_body(body_blocks, tab_handle, ctx)
            if ctx.cancelled:
                break
            completed += 1

        logger.debug(f"Loop finished {completed}/{count} iteration(s) over {len(body)} block(s)")
        return RepeaterResult(tab_handle, body.last_index, completed)


class ForEachHandler:
    """Runs a body once per child element of a container on the page."""

    def __init__(self, control: ControlFlow, config: Optional[EngineConfig] = None):
        self.control = control
        self.config = config or EngineConfig()

    async def count_items(self, tab_handle: TabHandle, parent: str, child: str) -> int:
        """
        Count the children matching child inside the container parent.

        Raises:
            ElementError: If the container cannot be found or counted
            EmptyCollectionError: If it has no matching children
        """
        dispatcher = self.control.step_executor.dispatcher
        result = await dispatcher.query(
            tab_handle, ContentAction.COUNT, {'selector': parent, 'child_selector': child}
        )
        count = parse_int(result.data, None)
        if count is None:
            raise ElementError(f"Could not count list items: {parent} > {child}")
        if count <= 0:
            raise EmptyCollectionError(f"No elements in list: {parent} > {child}")
        return count

    async def execute(self, ctx: RunContext, index: int, tab_handle: TabHandle) -> RepeaterResult:
        """
        Run the for-each block at index.

        Each iteration dispatches deep copies of the body blocks, with any
        parameter equal to "*item" bound to that iteration's item selector.

        Raises:
            InvalidStateError: If there is no tab to query
            ElementError: If the container is missing
            EmptyCollectionError: If the container has no items
            EmptyBodyError: If there is nothing to repeat
        """
        if tab_handle is None:
            raise InvalidStateError("For each requires an active tab")

        blocks = ctx.flow.blocks
        for_each_block = blocks[index]
        params = ctx.variables.interpolate_params(for_each_block.params or {})
        parent = str(params.get('selector') or '')
        child = str(params.get('child_selector') or '') or self.config.default_child_selector

        count = await self.count_items(tab_handle, parent, child)
        body = compute_body(blocks, index)
        body_blocks = body.select(blocks)
        icon = block_meta(for_each_block.type).icon

        completed = 0
        for position in range(1, count + 1):
            if ctx.cancelled:
                break
            item_selector = f"{parent} > {child}:nth-child({position})"
            ctx.variables[INDEX_VAR] = position
            ctx.variables[ITEM_SELECTOR_VAR] = item_selector
            ctx.emit(RunState.RUNNING, f"🔄 For each {position}/{count}...", block_icon=icon)

            tab_handle = await self.control.run_body(
                body_blocks, tab_handle, ctx,
                transform=functools.partial(bind_item, item_selector=item_selector)
            )
            if ctx.cancelled:
                break
            completed += 1

        logger.debug(f"For each finished {completed}/{count} item(s) of {parent} > {child}")
        return RepeaterResult(tab_handle, body.last_index, completed)
