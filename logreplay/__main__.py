"""
Replay an access log against a server, keeping the original request pacing.

Usage:
    python -m logreplay --file log_examples/sample.json
    python -m logreplay --file access.ndjson --target http://localhost:8081 --shift 5s
    python -m logreplay '[{"accessed_at": "2020-06-22 04:24:00.678451 UTC", ...}]'
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

import httpx

from logreplay import metrics
from logreplay.config import resolve_settings
from logreplay.dispatcher import resolve_url
from logreplay.errors import MalformedEntry
from logreplay.loader import load_log_file, load_log_text
from logreplay.report import format_outcome, format_summary, write_results
from logreplay.runner import CancellationToken, RunState, run
from logreplay.timeline import build_timeline, parse_shift

EXIT_INVALID_INPUT = 2
EXIT_ABORTED = 130


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="logreplay",
        description="Replay recorded HTTP access logs with their original timing.",
    )
    ap.add_argument("access_log", nargs="?", help="log text (JSON array or NDJSON)")
    ap.add_argument("-f", "--file", metavar="filepath", help="access log filepath")
    ap.add_argument("--shift", default="0s", help="time shift (example 2s, 5m, 5h, 1d, 2w)")
    ap.add_argument("--target", help="re-base requests onto this URL, e.g. http://localhost:8081")
    ap.add_argument("--config", help="YAML settings file")
    ap.add_argument("--timeout", type=float, help="per-request timeout in seconds (default: 30)")
    ap.add_argument("--concurrent-ties", action="store_true", default=None,
                    help="send requests recorded at the same instant concurrently")
    ap.add_argument("--max-concurrency", type=int, help="cap for --concurrent-ties (default: 8)")
    ap.add_argument("--retries", type=int, help="retries after a transport error (default: 0)")
    ap.add_argument("--skip-invalid", action="store_true", help="drop malformed entries instead of failing")
    ap.add_argument("--out", help="write per-request results as NDJSON")
    ap.add_argument("--metrics-port", type=int, help="serve Prometheus metrics on this port")
    ap.add_argument("-v", "--verbose", action="count", default=0, help="-v for info, -vv for debug")
    return ap


def configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s - %(message)s")


def install_signal_handlers(cancel: CancellationToken) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel.cancel)
        except (NotImplementedError, RuntimeError, ValueError):
            # Windows event loops have no signal support
            pass


async def replay(
    timeline,
    target,
    runner_config,
    cancel=None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
):
    cancel = cancel or CancellationToken()
    install_signal_handlers(cancel)
    total = len(timeline)

    def show(position, outcome):
        item = timeline[position]
        print(format_outcome(position, total, resolve_url(item.entry.url, target), item.entry.method, outcome))

    return await run(timeline, target, cancel=cancel, config=runner_config,
                     on_outcome=show, transport=transport)


def main(argv=None, transport: Optional[httpx.AsyncBaseTransport] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    if args.file is None and args.access_log is None:
        print("❌ please specify log filepath or access log text", file=sys.stderr)
        return EXIT_INVALID_INPUT

    try:
        shift = parse_shift(args.shift)
        if shift.total_seconds() < 0:
            raise ValueError(f"shift must not be negative: {args.shift}")
        target, runner_config = resolve_settings(
            args.config,
            cli={
                "target": args.target,
                "timeout": args.timeout,
                "concurrent_ties": args.concurrent_ties,
                "max_concurrency": args.max_concurrency,
                "max_retries": args.retries,
            },
        )
        if args.file:
            entries = load_log_file(args.file, skip_invalid=args.skip_invalid)
        else:
            entries = load_log_text(args.access_log, skip_invalid=args.skip_invalid)
    except (MalformedEntry, OSError, ValueError) as e:
        print(f"❌ {e}", file=sys.stderr)
        return EXIT_INVALID_INPUT

    timeline = build_timeline(entries, shift)
    if args.metrics_port:
        metrics.serve(args.metrics_port)

    print(f"Replaying {len(timeline)} requests over {timeline.duration} (shift {args.shift}) ...")
    runner = asyncio.run(replay(timeline, target, runner_config, transport=transport))

    for line in format_summary(runner.outcomes, runner.state.value):
        print(line)
    if args.out:
        count = write_results(args.out, timeline, runner.outcomes, target)
        print(f"Wrote {count} results to {args.out}")

    if runner.state is RunState.ABORTED:
        return EXIT_ABORTED
    return 0


if __name__ == "__main__":
    sys.exit(main())
