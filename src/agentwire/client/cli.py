"""Command-line entry point: run one task against an engine subprocess."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from agentwire.client.display import RichSink, SilentSink
from agentwire.client.prompts import INPUT_FAILURES, PromptToolkitInput
from agentwire.client.session import AgentSession
from agentwire.client.stdio_channel import StdioChannel
from agentwire.config import build_client_config
from agentwire.errors import AgentwireError, TaskTimedOut
from agentwire.log_utils import build_log_config, configure_logging, log_event

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_TIMEOUT = 2
EXIT_INTERRUPTED = 130

READY_TIMEOUT_S = 60.0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="agentwire", description="Run a task against an agent engine program.")
    parser.add_argument("-p", "--prompt", help="Task text; read from the terminal when omitted")
    parser.add_argument(
        "-y",
        "--non-interactive",
        action="store_true",
        help="Let the engine auto-approve actions; followup questions time out to their first suggestion",
    )
    parser.add_argument("--mode", help="Engine mode to start the task in")
    parser.add_argument("--followup-timeout", type=float, help="Seconds before a followup auto-selects (default 10)")
    parser.add_argument("--task-timeout", type=float, help="Hard ceiling for the whole task in seconds (default 600)")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress session output except errors")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show every message type")
    parser.add_argument("engine_program", help="Path to the engine program to launch")
    parser.add_argument("engine_args", nargs=argparse.REMAINDER, help="Arguments for the engine")
    return parser


async def main(argv: list[str]) -> int:
    args = build_parser().parse_args(argv[1:])
    configure_logging(build_log_config(log_file_name="agentwire.log"))

    config = build_client_config(
        interactive=False if args.non_interactive else None,
        mode=args.mode,
        followup_timeout_s=args.followup_timeout,
        task_timeout_s=args.task_timeout,
        quiet=True if args.quiet else None,
        verbose=True if args.verbose else None,
    )
    terminal = RichSink()
    sink = SilentSink(errors=terminal) if config.quiet else terminal
    line_input = PromptToolkitInput()

    channel = StdioChannel(args.engine_program, args.engine_args)
    session = AgentSession(channel, config=config, sink=sink, line_input=line_input)
    try:
        await channel.start()
        prompt = args.prompt
        if not prompt:
            try:
                prompt = (await line_input.ask("Task: ")).strip()
            except INPUT_FAILURES:
                prompt = ""
        if not prompt:
            terminal.write_error("[error]", "no task given")
            return EXIT_FAILED

        await session.wait_until_ready(READY_TIMEOUT_S)
        result = await session.submit_task(prompt)
    except TaskTimedOut as exc:
        terminal.write_error("[error]", str(exc))
        return EXIT_TIMEOUT
    except asyncio.TimeoutError:
        terminal.write_error("[error]", "engine did not become ready")
        return EXIT_FAILED
    except AgentwireError as exc:
        log_event(logger, "cli.failed", level=logging.ERROR, error=str(exc))
        terminal.write_error("[error]", str(exc))
        return EXIT_FAILED
    finally:
        await session.dispose()

    if result.cancelled:
        return EXIT_INTERRUPTED
    return EXIT_OK if result.success else EXIT_FAILED


def run() -> None:
    try:
        raise SystemExit(asyncio.run(main(sys.argv)))
    except KeyboardInterrupt:
        raise SystemExit(EXIT_INTERRUPTED)


__all__ = ["build_parser", "main", "run"]
