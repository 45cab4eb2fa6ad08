"""Main entry point — ``python3 -m reencode.app.main`` / ``reencode-bench``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

import aiofiles

from reencode.app.bootstrap import Bench, create_bench
from reencode.app.settings import load_settings
from reencode.domain.errors import EngineUnavailableError, PipelineError
from reencode.domain.models import MediaBlob, ResultRecord
from reencode.domain.units import format_bytes

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reencode-bench",
        description="Record segments, stream-copy merge them and re-encode to constant-frame-rate MP4",
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML settings file")
    parser.add_argument("--runs", type=int, default=1, help="Sequential runs to execute (default: 1)")
    parser.add_argument("--segments", type=int, default=None, help="Segments per run")
    parser.add_argument("--duration-ms", type=int, default=None, help="Segment length in milliseconds")
    parser.add_argument("--gap-ms", type=int, default=None, help="Pause between segments in milliseconds")
    parser.add_argument("--results", type=Path, default=None, help="Append result records to this JSONL file")
    parser.add_argument("--output-dir", type=Path, default=None, help="Save merged and MP4 outputs per run")
    parser.add_argument("--preload", action="store_true", help="Load the engine before the first run")
    parser.add_argument("--verbose", action="store_true", help="Stream the operator log to stderr while running")
    return parser


def format_summary(record: ResultRecord) -> str:
    """One-line size comparison for a finished run."""
    return (
        f"{record.run_id}: merged {format_bytes(record.merged_bytes)} -> "
        f"mp4 {format_bytes(record.mp4_bytes)} ({record.size_reduction_pct:.1f}% smaller), "
        f"total {record.t_total_ms}ms"
    )


async def _save_outputs(directory: Path, outputs: Sequence[MediaBlob]) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    for blob in outputs:
        async with aiofiles.open(directory / blob.name, "wb") as f:
            await f.write(blob.data)
    logger.info("Saved %d output(s) to %s", len(outputs), directory)


def _echo_log_line(line: str) -> None:
    print(line, file=sys.stderr)


async def _run_bench(bench: Bench, runs: int, preload: bool, verbose: bool = False) -> int:
    """Execute ``runs`` sequential runs. Returns the number that produced no record.

    With ``verbose`` every operator log line goes to stderr as it is written;
    otherwise the log of a failed run is dumped once the run ends.
    """
    if verbose:
        bench.rolling_log.subscribe(_echo_log_line)

    if preload:
        try:
            await bench.gateway.ensure_ready()
        except EngineUnavailableError as exc:
            logger.error("Engine preload failed: %s", exc.message)
            return runs

    failures = 0
    for index in range(runs):
        logger.info("Run %d/%d", index + 1, runs)
        bench.rolling_log.clear()
        record = await bench.runner.run()
        if record is None:
            failures += 1
            if not verbose:
                print(bench.rolling_log.text(), file=sys.stderr)
            continue

        print(format_summary(record))
        output_dir = bench.settings.output_dir
        if output_dir is not None:
            await _save_outputs(output_dir / record.run_id, bench.runner.last_outputs)
    return failures


async def run(args: argparse.Namespace) -> int:
    """Load settings, wire the bench and execute the requested runs."""
    settings = load_settings(
        args.config,
        segment_count=args.segments,
        segment_duration_ms=args.duration_ms,
        gap_ms=args.gap_ms,
        results_log_path=args.results,
        output_dir=args.output_dir,
    )
    bench = create_bench(settings)
    try:
        failures = await _run_bench(bench, args.runs, args.preload, args.verbose)
    finally:
        await bench.aclose()

    if failures:
        logger.error("%d of %d run(s) failed", failures, args.runs)
        return 1
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.runs < 1:
        parser.error("--runs must be at least 1")

    try:
        return asyncio.run(run(args))
    except PipelineError as exc:
        logger.error("%s", exc.message)
        return 2
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
