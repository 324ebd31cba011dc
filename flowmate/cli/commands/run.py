"""Run command implementation."""

import asyncio
import logging
from argparse import Namespace
from pathlib import Path
from typing import Any, Dict, Optional

from flowmate.config import EngineConfig
from flowmate.exceptions import FlowValidationError
from flowmate.flow import Flow
from flowmate.loader import FlowLoader
from flowmate.workflow.runner import FlowEngine
from flowmate.workflow.status import RunState, RunStatus


logger = logging.getLogger(__name__)


def parse_variables(args: Namespace) -> Dict[str, str]:
    """Parse initial variables from --var KEY=VALUE arguments."""
    variables = {}
    for item in args.var or []:
        if '=' not in item:
            raise ValueError(f"Invalid variable format: {item}. Expected KEY=VALUE")
        key, value = item.split('=', 1)
        variables[key.strip()] = value
    return variables


def build_config(args: Namespace, flow: Flow) -> EngineConfig:
    """Engine configuration from the flow's settings, overridden by CLI flags."""
    config = EngineConfig.from_dict(flow.settings)
    return config.override(
        block_timeout_sec=args.block_timeout,
        load_timeout_sec=args.load_timeout,
        max_retries=args.max_retries,
        retry_delay_ms=args.retry_delay,
    )


def print_status(status: RunStatus) -> None:
    """Status sink writing one line per event."""
    line = f"[{status.current}/{status.total}] {status.message}"
    if status.state == RunState.ERROR:
        logger.error(line)
    else:
        print(line, flush=True)


async def execute_flow(
    flow: Flow,
    config: EngineConfig,
    variables: Dict[str, Any],
    url: Optional[str] = None,
    headless: bool = False,
    quiet: bool = False
) -> RunStatus:
    """Run a flow in a fresh Playwright browser and return its terminal status."""
    from flowmate.host.playwright_host import PlaywrightHost
    from flowmate.exec.wait import wait_for_tab_load

    async with PlaywrightHost(headless=headless) as host:
        engine = FlowEngine(host, host, config)
        tab_handle = None
        if url:
            tab_handle = await host.create(url)
            await wait_for_tab_load(host, tab_handle, timeout_sec=config.load_timeout_sec)
        return await engine.run(
            flow,
            tab_handle,
            on_status=None if quiet else print_status,
            initial_variables=variables
        )


def run_flow(args: Namespace) -> int:
    """
    Run a flow file.

    Returns:
        0 when the flow completed, 2 on validation errors, 1 otherwise
    """
    # Set up logging
    log_level = getattr(logging, args.log_level.upper())
    if args.debug:
        log_level = logging.DEBUG
    elif args.quiet:
        log_level = logging.ERROR
    elif args.verbose:
        log_level = logging.DEBUG

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        flow_path = Path(args.flow).resolve()
        if not flow_path.exists():
            logger.error(f"Flow file not found: {flow_path}")
            return 1

        logger.info(f"Loading flow: {flow_path}")
        loader = FlowLoader()
        try:
            flow = loader.load(flow_path)
        except FlowValidationError as e:
            for error in e.errors:
                where = f" at {error.path}" if error.path else ""
                logger.error(f"Validation error{where}: {error.message}")
            return e.exit_code

        config = build_config(args, flow)
        variables = parse_variables(args)

        # Dry run mode - just validate
        if args.dry_run:
            logger.info(
                f"[DRY RUN] Flow '{flow.name}' is valid "
                f"({flow.enabled_count}/{len(flow.blocks)} block(s) enabled)"
            )
            return 0

        try:
            status = asyncio.run(execute_flow(
                flow, config, variables,
                url=args.url,
                headless=args.headless,
                quiet=args.quiet
            ))
        except ImportError as e:
            logger.error(f"Browser support is not installed ({e}); install flowmate[browser]")
            return 1

        return 0 if status.state == RunState.COMPLETED else 1

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Validation error: {e}")
        return 2
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return 1
