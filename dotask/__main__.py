from __future__ import annotations

import argparse
import logging
import sys
import threading
import time
from collections.abc import Iterable

from loguru import logger

from dotask import Delay, Executor, RuntimeConfig, TaskGenerator, task


@task
def inner(unit: float) -> TaskGenerator[None]:
    logger.info("Inner starts")
    yield Delay(3 * unit)
    logger.info("Inner finished")


@task
def outer(unit: float) -> TaskGenerator[None]:
    logger.info("Outer starts")
    yield inner(unit)
    for units in (2, 4, 1):
        logger.info("Now we schedule another timer ({} units)", units)
        elapsed = yield Delay(units * unit)
        logger.info("Timer of {} units finished after {:.2f}s", units, elapsed)
    logger.info("Outer finished")


@task
def another(unit: float) -> TaskGenerator[None]:
    logger.info("Another task starts")
    elapsed = yield Delay(7 * unit)
    logger.info("Another task finishes after {:.2f}s", elapsed)


def _run_clock(unit: float, stop: threading.Event) -> None:
    # Give the first narration lines a head start so output does not interleave.
    if stop.wait(0.01):
        return
    tick = 0
    while not stop.is_set():
        logger.info("----->{} units", tick)
        tick += 1
        stop.wait(unit)


def _configure_logging(level: str) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:HH:mm:ss.SSS}</green> <level>{level: <7}</level> {thread.name}: {message}",
    )
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def run_demo(args: argparse.Namespace) -> int:
    _configure_logging("DEBUG" if args.debug else args.log_level.upper())
    config = RuntimeConfig.from_env().with_overrides(debug=args.debug or None)

    stop_clock = threading.Event()
    clock: threading.Thread | None = None
    if args.clock:
        clock = threading.Thread(
            target=_run_clock, args=(args.unit, stop_clock), name="demo-clock", daemon=True
        )
        clock.start()

    started = time.monotonic()
    try:
        with Executor(config) as executor:
            outcomes = executor.run_until_complete(outer(args.unit), another(args.unit))
    finally:
        stop_clock.set()
        if clock is not None:
            clock.join(timeout=1.0)

    failures = [outcome for outcome in outcomes if outcome.is_err()]
    logger.info(
        "Demo finished in {:.2f}s: {} stats={}",
        time.monotonic() - started,
        "ok" if not failures else f"{len(failures)} failed",
        executor.stats.snapshot(),
    )
    return 1 if failures else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dotask", description="Utilities for the dotask runtime")
    subparsers = parser.add_subparsers(dest="command", required=True)

    demo_parser = subparsers.add_parser(
        "demo",
        help="Run the nested-timer demonstration",
        description=(
            "Runs two root tasks: 'outer' awaits 'inner' (timer of 3 units) and then timers "
            "of 2, 4 and 1 units; 'another' awaits a single timer of 7 units."
        ),
    )
    demo_parser.add_argument(
        "--unit", type=float, default=1.0, help="Seconds per time unit (default: 1.0)"
    )
    demo_parser.add_argument(
        "--clock",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Print a tick for every elapsed unit",
    )
    demo_parser.add_argument("--log-level", default="INFO", help="Log level (default: INFO)")
    demo_parser.add_argument(
        "--debug", action="store_true", help="Log every resumption (same as DOTASK_DEBUG=1)"
    )
    demo_parser.set_defaults(func=run_demo)
    return parser


def main(argv: Iterable[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    if getattr(args, "unit", 1.0) <= 0:
        parser.error("--unit must be positive")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
