# src/main.py — v1
"""CLI entry point — run, progress, retry, reset, revise, orphans commands.

Usage:
    scriptconveyor run --owner <id> --source-file <source.json>
    scriptconveyor progress <item_id>
    scriptconveyor retry <item_id> --owner <id>
    scriptconveyor reset <item_id>
    scriptconveyor revise <artifact_id> --owner <id> --feedback "..." [--scenes 1,3]
    scriptconveyor orphans

Commands that queue work start the worker pool and wait until it drains.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from scriptconveyor.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="scriptconveyor",
        description=f"scriptconveyor v{__version__} — short-video script pipeline",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- run ---
    p_run = subparsers.add_parser("run", help="Process one source to an artifact")
    p_run.add_argument("--owner", required=True, help="Owner id")
    p_run.add_argument(
        "--source-file", type=Path, required=True,
        help="JSON file with the source (type, item_id, title, content, url)",
    )
    p_run.set_defaults(func=_cmd_run)

    # --- progress ---
    p_progress = subparsers.add_parser("progress", help="Show an item's progress")
    p_progress.add_argument("item_id")
    p_progress.set_defaults(func=_cmd_progress)

    # --- retry ---
    p_retry = subparsers.add_parser("retry", help="Retry a failed item")
    p_retry.add_argument("item_id")
    p_retry.add_argument("--owner", required=True, help="Owner id")
    p_retry.add_argument(
        "--source-file", type=Path, default=None,
        help="Source JSON, needed if the item must re-run the scout stage",
    )
    p_retry.set_defaults(func=_cmd_retry)

    # --- reset ---
    p_reset = subparsers.add_parser("reset", help="Operator reset of a stuck item")
    p_reset.add_argument("item_id")
    p_reset.add_argument("--source-file", type=Path, default=None)
    p_reset.set_defaults(func=_cmd_reset)

    # --- revise ---
    p_revise = subparsers.add_parser("revise", help="Submit reviewer feedback")
    p_revise.add_argument("artifact_id")
    p_revise.add_argument("--owner", required=True, help="Owner id")
    p_revise.add_argument("--feedback", required=True, help="Free-text feedback")
    p_revise.add_argument(
        "--scenes", default=None,
        help="Comma-separated scene ids to rewrite (default: whole script)",
    )
    p_revise.set_defaults(func=_cmd_revise)

    # --- orphans ---
    p_orphans = subparsers.add_parser(
        "orphans", help="List processing items no worker holds",
    )
    p_orphans.set_defaults(func=_cmd_orphans)

    return parser


def _runtime(source_file: Path | None = None):
    """Build a runtime from .env settings, with an optional file source."""
    from scriptconveyor.api.facade import build_runtime
    from scriptconveyor.config.settings import load_settings
    from scriptconveyor.logging.logger import setup_logging
    from scriptconveyor.sources.memory_provider import InMemorySourceProvider

    settings = load_settings()
    if settings.log_file is not None:
        setup_logging(
            level=settings.log_level,
            log_format=settings.log_format,
            log_file=str(settings.log_file),
            rotation=settings.log_rotation,
            retention=settings.log_retention,
        )
        logging.getLogger("scriptconveyor").propagate = False
    if settings.db_path != ":memory:":
        Path(settings.db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
        settings = settings.model_copy(
            update={"db_path": str(Path(settings.db_path).expanduser())}
        )

    provider = InMemorySourceProvider()
    ref = provider.register_file(source_file) if source_file else None
    return build_runtime(settings, source_provider=provider), ref


async def _drain(runtime) -> None:
    runtime.start()
    try:
        await runtime.pool.join()
    finally:
        await runtime.shutdown()


async def _cmd_run(args: argparse.Namespace) -> int:
    """Trigger one source and process it to completion."""
    if not args.source_file.exists():
        logger.error("File not found: %s", args.source_file)
        return 1

    runtime, ref = _runtime(args.source_file)
    result = await runtime.service.trigger(args.owner, ref)
    report = None
    try:
        runtime.start()
        await runtime.pool.join()
        report = await runtime.service.get_progress(result.item_id)
    finally:
        await runtime.shutdown()

    _print_progress(report)
    return 0 if report.status.value == "completed" else 1


async def _cmd_progress(args: argparse.Namespace) -> int:
    runtime, _ = _runtime()
    try:
        report = await runtime.service.get_progress(args.item_id)
    finally:
        await runtime.shutdown()
    _print_progress(report)
    return 0


async def _cmd_retry(args: argparse.Namespace) -> int:
    runtime, _ = _runtime(args.source_file)
    result = await runtime.service.retry_item(args.item_id, args.owner)
    print(f"Retry {result.retry_count} queued for {result.item_id}")
    await _drain(runtime)
    return await _cmd_progress(args)


async def _cmd_reset(args: argparse.Namespace) -> int:
    runtime, _ = _runtime(args.source_file)
    await runtime.service.reset_item(args.item_id)
    print(f"Item {args.item_id} reset to queued")
    await _drain(runtime)
    return await _cmd_progress(args)


async def _cmd_revise(args: argparse.Namespace) -> int:
    scenes = None
    if args.scenes:
        scenes = [int(s) for s in args.scenes.split(",") if s.strip()]

    runtime, _ = _runtime()
    result = await runtime.service.submit_revision(
        args.artifact_id, args.owner, args.feedback, scenes
    )
    print(
        f"Revision {result.attempt} of {result.artifact_id} queued as {result.item_id} "
        f"(resumes at stage {result.resume_stage})"
    )
    await _drain(runtime)
    args.item_id = result.item_id
    return await _cmd_progress(args)


async def _cmd_orphans(args: argparse.Namespace) -> int:
    runtime, _ = _runtime()
    try:
        orphans = await runtime.service.list_orphaned()
    finally:
        await runtime.shutdown()

    if not orphans:
        print("No orphaned items")
        return 0
    print(f"\n{len(orphans)} orphaned item(s):")
    for item in orphans:
        print(f"  {item.id}  owner={item.owner_id}  stage={item.current_stage}  "
              f"lease={item.locked_by or '-'}")
    return 0


def _print_progress(report: object) -> None:
    """Print a human-readable progress report."""
    print(f"\nItem {report.item_id}:")
    print(f"  Status:     {report.status.value}")
    print(f"  Stage:      {report.current_stage}/{report.total_stages}")
    print(f"  Progress:   {report.progress_percent:.1f}%")
    print(f"  Elapsed:    {report.elapsed_seconds:.1f}s")
    print(f"  Remaining:  {report.estimated_remaining_seconds:.1f}s")
    if report.error_message:
        print(f"  Error:      [{report.error_kind}] stage {report.error_stage}: "
              f"{report.error_message}")
    if report.artifact_id:
        print(f"  Artifact:   {report.artifact_id}")
    for stage in report.stages:
        print(f"    {stage.index} {stage.name:<10} {stage.status:<10} "
              f"{stage.duration_seconds:.1f}s")


def _setup_logging(verbose: bool) -> None:
    """Configure logging for CLI usage."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)


if __name__ == "__main__":
    sys.exit(main())
