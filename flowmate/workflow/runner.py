"""
Flow runner.
Owns the instruction pointer over a flow's blocks, applies enablement,
per-block timeouts, status reporting and cancellation.
"""

import asyncio
import logging
from typing import Any, Awaitable, Mapping, Optional, TypeVar

from ..config import EngineConfig
from ..exceptions import BlockTimeoutError, FlowAlreadyRunningError
from ..exec.content import ContentDispatcher
from ..exec.retry import RetryPolicy
from ..exec.step_executor import StepExecutor
from ..flow import Block, BlockType, Flow, block_meta
from ..host.types import ContentCapability, TabHandle, TabHost
from ..variables.substitution import VariableStore
from .conditions import ConditionEvaluator
from .context import CancellationToken, RunContext
from .control import BodyRange, ControlFlow, ForEachHandler, LoopHandler
from .status import RunState, RunStatus, StatusSink


logger = logging.getLogger(__name__)

T = TypeVar('T')


class FlowEngine:
    """
    Main flow execution engine.

    One engine runs at most one flow at a time. Variables of the last run
    stay readable on the engine until the next run starts.
    """

    def __init__(
        self,
        host: TabHost,
        content: ContentCapability,
        config: Optional[EngineConfig] = None,
        retry_policy: Optional[RetryPolicy] = None
    ):
        """
        Initialize flow engine.

        Args:
            host: Tab lifecycle capability
            content: DOM content capability
            config: Engine configuration
            retry_policy: Override for the transient-failure retry policy
        """
        self.config = config or EngineConfig()

        self.dispatcher = ContentDispatcher(content, self.config, retry_policy)
        self.step_executor = StepExecutor(host, content, self.config, dispatcher=self.dispatcher)
        self.condition_evaluator = ConditionEvaluator(self.dispatcher, self.config)
        self.control = ControlFlow(self.step_executor, self.condition_evaluator)
        self.repeaters = {
            BlockType.LOOP: LoopHandler(self.control, self.config),
            BlockType.FOR_EACH: ForEachHandler(self.control, self.config),
        }

        # Execution state
        self.running = False
        self.current_block_index = -1
        self.flow: Optional[Flow] = None
        self.variables = VariableStore()
        self.last_status: Optional[RunStatus] = None
        self._token: Optional[CancellationToken] = None

    async def run(
        self,
        flow: Flow,
        tab_handle: TabHandle = None,
        on_status: Optional[StatusSink] = None,
        initial_variables: Optional[Mapping[str, Any]] = None
    ) -> RunStatus:
        """
        Run a flow to completion, failure or cancellation.

        Block failures never escape: they end the run with a single error
        status, which is also returned.

        Args:
            flow: Flow to run
            tab_handle: Tab the first block targets (may be None)
            on_status: Status sink called with every event
            initial_variables: Values seeded into the fresh variable store

        Returns:
            The terminal status of the run

        Raises:
            FlowAlreadyRunningError: If this engine is already running a flow
        """
        if self.running:
            raise FlowAlreadyRunningError(self.flow.name if self.flow else None)

        self.running = True
        self.flow = flow
        self.variables = VariableStore()
        for name, value in (initial_variables or {}).items():
            self.variables.assign(name, value)
        self._token = CancellationToken()

        ctx = RunContext(
            flow=flow,
            variables=self.variables,
            token=self._token,
            sink=on_status,
            total=flow.enabled_count,
        )
        logger.info(f"Starting flow '{flow.name}' ({ctx.total} enabled block(s))")
        ctx.emit(RunState.RUNNING, f'Starting "{flow.name}"...')

        try:
            await self._scan(ctx, tab_handle)

            # A stopped run is not an error; it ends like an exhausted one
            if ctx.cancelled:
                logger.info(f"Flow '{flow.name}' stopped after {ctx.current}/{ctx.total} block(s)")
            else:
                logger.info(f"Flow '{flow.name}' completed")
            ctx.current = ctx.total
            status = ctx.emit(RunState.COMPLETED, f'✅ "{flow.name}" completed')

        except Exception as e:
            logger.error(f"Flow '{flow.name}' failed at block {self.current_block_index}: {e}")
            status = ctx.emit(RunState.ERROR, f"❌ Error: {e}", error=str(e))

        finally:
            self.running = False
            self.current_block_index = -1
            self.flow = None
            self._token = None

        self.last_status = status
        return status

    def stop(self) -> None:
        """Ask the active run to stop at its next block or iteration boundary."""
        if self._token is not None and not self._token.cancelled:
            logger.info("Stop requested")
            self._token.cancel()

    async def _scan(self, ctx: RunContext, tab_handle: TabHandle) -> TabHandle:
        blocks = ctx.flow.blocks
        index = 0

        while index < len(blocks):
            if ctx.cancelled:
                break

            block = blocks[index]
            if not block.enabled:
                index += 1
                continue

            self.current_block_index = index
            ctx.current += 1

            if ctx.skip_remaining > 0:
                ctx.skip_remaining -= 1
                logger.info(f"Skipping {block.label} (condition not met)")
                index = self._skip(blocks, index, block)
                continue

            meta = block_meta(block.type)
            ctx.emit(RunState.RUNNING, f"{meta.title} running...", block_icon=meta.icon)

            if block.is_repeater:
                handler = self.repeaters[block.block_type]
                result = await self._with_timeout(block, handler.execute(ctx, index, tab_handle))
                tab_handle = result.tab_handle
                index = result.last_index + 1
            else:
                tab_handle = await self._with_timeout(block, self.control.run_block(block, tab_handle, ctx))
                index += 1

        return tab_handle

    def _skip(self, blocks, index: int, block: Block) -> int:
        # A skipped repeater takes its body with it
        if block.is_repeater:
            return BodyRange.after(blocks, index).end
        return index + 1

    async def _with_timeout(self, block: Block, operation: Awaitable[T]) -> T:
        timeout = self.config.block_timeout_sec
        try:
            return await asyncio.wait_for(operation, timeout=timeout)
        except asyncio.TimeoutError:
            raise BlockTimeoutError(
                f"Block timed out ({timeout:g}s): {block.label}",
                timeout_sec=timeout
            )

