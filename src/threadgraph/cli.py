"""CLI entry point for running threadgraph threads.

Usage:
    threadgraph run --thread t1 --tools mypkg.tools:registry "What is the mark price of BTC?"
    threadgraph resume --thread t1 --tools mypkg.tools:registry
    threadgraph show --thread t1

Exits 0 when the thread reaches its end. On a fatal engine error the error
kind is printed to stderr and the exit code identifies it.
"""

import argparse
import asyncio
import importlib
import logging
import sys
from typing import Any

from threadgraph.config import ThreadGraphConfig
from threadgraph.errors import EngineError
from threadgraph.threadgraph import ThreadGraph
from threadgraph.tools.registry import ToolDefinition, ToolRegistry

EXIT_CODES = {
    "engine": 1,
    "state": 1,
    "model": 2,
    "tool": 3,
    "budget": 4,
    "storage": 5,
}


def load_tools(target_ref: str | None) -> ToolRegistry:
    """Import a registry or tool definitions from ``module:attribute``."""
    if not target_ref:
        return ToolRegistry()
    module_name, _, attr = target_ref.partition(":")
    if not attr:
        raise ValueError(f"Tool reference {target_ref!r} must look like 'module:attribute'")
    target: Any = getattr(importlib.import_module(module_name), attr)
    if isinstance(target, ToolRegistry):
        return target
    if isinstance(target, ToolDefinition):
        return ToolRegistry([target])
    return ToolRegistry(target)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="threadgraph",
        description="Checkpointed agent/tools loop for tool-calling models",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--store",
        choices=["memory", "file", "kuzu"],
        default=None,
        help="Checkpoint backend (default: THREADGRAPH_CHECKPOINT_STORE or kuzu)",
    )
    sub = parser.add_subparsers(dest="command")

    run_parser = sub.add_parser("run", help="Send a user message on a thread")
    run_parser.add_argument("--thread", required=True, help="Thread id")
    run_parser.add_argument("--tools", help="Tools to expose, as module:attribute")
    run_parser.add_argument("message", help="User message")

    resume_parser = sub.add_parser("resume", help="Continue an interrupted thread")
    resume_parser.add_argument("--thread", required=True, help="Thread id")
    resume_parser.add_argument("--tools", help="Tools to expose, as module:attribute")

    show_parser = sub.add_parser("show", help="Print a thread's persisted messages")
    show_parser.add_argument("--thread", required=True, help="Thread id")

    return parser


async def _execute(
    args: argparse.Namespace, config: ThreadGraphConfig, tools: ToolRegistry
) -> int:
    async with ThreadGraph(config=config, tools=tools) as tg:
        if args.command == "show":
            state = await tg.get_state(args.thread)
            if state is None:
                print(f"No checkpoint for thread {args.thread!r}", file=sys.stderr)
                return 1
            print(state.model_dump_json(indent=2))
            return 0

        if args.command == "run":
            state = await tg.run(args.thread, args.message)
        else:
            state = await tg.resume(args.thread)

        if state.last_message is not None:
            print(state.last_message.content)
        return 0


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides: dict[str, Any] = {}
    if args.store:
        overrides["checkpoint_store"] = args.store
    config = ThreadGraphConfig(**overrides)

    try:
        tools = load_tools(getattr(args, "tools", None))
    except (ImportError, AttributeError, ValueError) as exc:
        print(f"Cannot load tools: {exc}", file=sys.stderr)
        sys.exit(1)

    try:
        code = asyncio.run(_execute(args, config, tools))
    except EngineError as exc:
        print(f"threadgraph error ({exc.kind}): {exc}", file=sys.stderr)
        sys.exit(EXIT_CODES.get(exc.kind, 1))
    sys.exit(code)


if __name__ == "__main__":
    main()
