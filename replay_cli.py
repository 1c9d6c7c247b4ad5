#!/usr/bin/env python3
"""
Step Replay CLI

Usage:
    python replay_cli.py run <workflow_file> [--url <url>] [--speed <n>] [--visible] [--grace <s>]
    python replay_cli.py validate <workflow_file>
    python replay_cli.py serve [--host <host>] [--port <port>]
"""

import argparse
import asyncio
import json
import logging
import sys

import replay_config
from browser_driver import PlaywrightDriver
from replay_errors import InvalidWorkflow
from workflow_engine import ReplayEngine, TeardownScheduler
from workflow_loader import load_workflow, validate_workflow
from workflow_models import ClickStep

logger = logging.getLogger(__name__)


def output_json(data):
    """Print JSON to stdout."""
    print(json.dumps(data, indent=2, ensure_ascii=False))


# --- Commands ---


async def _replay(args) -> bool:
    workflow = load_workflow(args.workflow_file)
    if args.url:
        workflow = workflow.model_copy(update={"url": args.url})
    if args.speed is not None:
        if args.speed <= 0:
            raise InvalidWorkflow(f"speed must be greater than 0, got {args.speed}")
        workflow = workflow.model_copy(update={"speed": args.speed})

    engine = ReplayEngine(
        PlaywrightDriver(headless=args.headless),
        teardown=TeardownScheduler(args.grace),
    )
    result = await engine.replay(workflow)
    output_json(result.model_dump())

    try:
        # Keep the browser around for the grace period, like the server does
        await engine.teardown.drain()
    finally:
        await engine.teardown.shutdown()
    return result.ok


def cmd_run(args):
    ok = asyncio.run(_replay(args))
    if not ok:
        sys.exit(1)


def cmd_validate(args):
    logger.info(f"Loading workflow: {args.workflow_file}")
    workflow = load_workflow(args.workflow_file)

    logger.info("✓ Workflow loaded successfully")
    logger.info(f"  URL: {workflow.url}")
    logger.info(f"  Speed: {workflow.speed:g}")
    logger.info(f"  Steps: {len(workflow.steps)}")
    for index, step in enumerate(workflow.steps):
        if step.selector:
            target = step.selector
        elif isinstance(step, ClickStep):
            target = f"({step.x:g}, {step.y:g})"
        else:
            target = "<no selector>"
        logger.info(f"    {index}: {step.type} {target} after {step.delay:g}ms")

    warnings = validate_workflow(workflow)
    if warnings:
        logger.warning("Validation warnings:")
        for warning in warnings:
            logger.warning(f"  - {warning}")
    else:
        logger.info("✓ No validation warnings")

    logger.info(f"Run with: python replay_cli.py run {args.workflow_file}")


def cmd_serve(args):
    import uvicorn

    uvicorn.run("api_server:app", host=args.host, port=args.port)


def main():
    parser = argparse.ArgumentParser(description="Step Replay CLI")
    parser.add_argument("--log-level", default=replay_config.LOG_LEVEL, help="Logging level")

    sub = parser.add_subparsers(dest="command", required=True)

    # run
    p_run = sub.add_parser("run", help="Replay a workflow file")
    p_run.add_argument("workflow_file")
    p_run.add_argument("--url", help="Override the workflow URL")
    p_run.add_argument("--speed", type=float, help="Override the replay speed")
    p_run.add_argument("--visible", action="store_true", help="Run with visible browser")
    p_run.add_argument(
        "--grace",
        type=float,
        default=replay_config.TEARDOWN_GRACE_SECONDS,
        help="Seconds to keep the browser open after the run",
    )

    # validate
    p_val = sub.add_parser("validate", help="Check a workflow file")
    p_val.add_argument("workflow_file")

    # serve
    p_serve = sub.add_parser("serve", help="Start the HTTP API")
    p_serve.add_argument("--host", default=replay_config.API_HOST)
    p_serve.add_argument("--port", type=int, default=replay_config.API_PORT)

    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    if args.command == "run":
        args.headless = replay_config.HEADLESS and not args.visible

    commands = {
        "run": cmd_run,
        "validate": cmd_validate,
        "serve": cmd_serve,
    }

    try:
        commands[args.command](args)
    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        sys.exit(1)
    except InvalidWorkflow as e:
        logger.error(f"Invalid workflow: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)


if __name__ == "__main__":
    main()
