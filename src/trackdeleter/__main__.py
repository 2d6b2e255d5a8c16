"""CLI interface for trackdeleter."""

import argparse
import json
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Tuple

from colorama import Fore, Style, init

try:
    from shtab import DIRECTORY, FILE
except ImportError:
    # shtab not installed - tab completion won't work but that's okay
    DIRECTORY = FILE = None  # type: ignore

from . import __version__
from .apply import PlanFile, groups_to_list, write_groups_csv
from .cache import (
    CacheBackend,
    SQLiteCacheBackend,
    default_cache_path,
    open_cache,
)
from .config import Settings, ensure_config_exists, get_config_dir, load_settings
from .errors import ConfigError, PlanStateError, RootPathError
from .executor import DeletionExecutor
from .extractor import MetadataExtractor
from .fingerprint import MatchMode
from .grouping import DuplicateGrouper, GroupingResult, build_plan
from .models import (
    DeletionPlan,
    DeletionReport,
    DuplicateGroup,
    ExecutionMode,
    Outcome,
    PlanStatus,
    ScanResult,
    Track,
)
from .rules import RuleEngine
from .scanner import LibraryScanner
from .staging import StagingManager
from .walker import FileTreeWalker

# Initialize colorama for cross-platform color support
init(autoreset=True)

logger = logging.getLogger("trackdeleter")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_DUPLICATES_FOUND = 2
EXIT_INCOMPLETE = 3
EXIT_CANCELLED = 130

OUTCOME_COLORS = {
    Outcome.DELETED: Fore.GREEN,
    Outcome.WOULD_DELETE: Fore.CYAN,
    Outcome.ALREADY_ABSENT: Fore.YELLOW,
    Outcome.SKIPPED: Fore.YELLOW,
    Outcome.FAILED: Fore.RED,
}


def format_size(size_bytes: int) -> str:
    """Format byte size as human readable string."""
    size = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024.0:
            return f"{size:.1f} {unit}"
        size /= 1024.0
    return f"{size:.1f} PB"


def format_duration(seconds: float) -> str:
    """Format seconds as MM:SS."""
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes:02d}:{secs:02d}"


def format_track_info(track: Track) -> str:
    """Short audio description, e.g. 'MP3 320kbps 44.1kHz 03:12'."""
    parts = [track.format.upper() or "?"]
    parts.append(f"{track.bitrate}kbps" if track.bitrate is not None else "?kbps")
    if track.sample_rate:
        parts.append(f"{track.sample_rate / 1000:.1f}kHz")
    parts.append(format_duration(track.duration))
    return " ".join(parts)


def print_error(message: str) -> None:
    print(f"{Fore.RED}Error: {message}{Style.RESET_ALL}", file=sys.stderr)


def print_track_list(tracks: List[Track]) -> None:
    """Print the scanned tracks as a table."""
    print(f"{Fore.CYAN}{Style.BRIGHT}Tracks found: {len(tracks)}{Style.RESET_ALL}")
    for track in tracks:
        bitrate = f"{track.bitrate} kbps" if track.bitrate is not None else "unknown"
        print(
            f"  {track.filename} {Style.DIM}|{Style.RESET_ALL} "
            f"{track.title or '-'} {Style.DIM}|{Style.RESET_ALL} "
            f"{track.artist or '-'} {Style.DIM}|{Style.RESET_ALL} "
            f"{track.album or '-'} {Style.DIM}|{Style.RESET_ALL} "
            f"{format_duration(track.duration)} {track.format} "
            f"{format_size(track.size)} {track.sample_rate} Hz {bitrate}"
        )
    print()


def format_output_text(result: GroupingResult, scan: ScanResult) -> None:
    """Print duplicate groups with the keeper first."""
    _print_scan_problems(result, scan)

    if not result.groups:
        print("No duplicates found.")
        return

    reclaimable = sum(group.reclaimable_bytes for group in result.groups)
    print(
        f"{Fore.CYAN}{Style.BRIGHT}Found {len(result.groups)} group(s) of duplicate "
        f"tracks ({result.redundant_count} redundant, "
        f"{format_size(reclaimable)} reclaimable):{Style.RESET_ALL}\n"
    )

    for idx, group in enumerate(result.groups, 1):
        keeper = group.keeper
        label = " - ".join(p for p in (keeper.artist, keeper.title) if p)
        print(
            f"{Fore.CYAN}{Style.BRIGHT}Group {idx}{Style.RESET_ALL} "
            f"{Style.DIM}{label or keeper.path.stem}{Style.RESET_ALL}"
        )
        print(
            f"  {Fore.LIGHTGREEN_EX}{Style.BRIGHT}[Keep]{Style.RESET_ALL} "
            f"{keeper.path} {Style.DIM}({format_size(keeper.size)}){Style.RESET_ALL}"
            f" - {Fore.LIGHTGREEN_EX}{format_track_info(keeper)}{Style.RESET_ALL}"
        )
        for pos, track in enumerate(group.redundant):
            # Use └─ for last item, ├─ for others
            tree_char = "└─" if pos == len(group.redundant) - 1 else "├─"
            print(
                f"    {tree_char} {track.path} {Style.DIM}"
                f"({format_size(track.size)}){Style.RESET_ALL} - "
                f"{format_track_info(track)}"
            )
        print()


def _print_scan_problems(result: GroupingResult, scan: ScanResult) -> None:
    for dir_error in scan.directory_errors:
        print(f"{Fore.YELLOW}Skipped folder: {dir_error}{Style.RESET_ALL}")
    for extraction_error in scan.extraction_errors:
        print(f"{Fore.YELLOW}Skipped file: {extraction_error}{Style.RESET_ALL}")
    for item in result.unfingerprintable:
        print(
            f"{Fore.YELLOW}Not compared: {item.track.path} "
            f"({item.reason}){Style.RESET_ALL}"
        )
    if scan.directory_errors or scan.extraction_errors or result.unfingerprintable:
        print()


def build_output_json(
    result: GroupingResult,
    scan: ScanResult,
    include_tracks: bool = False,
    report: Optional[DeletionReport] = None,
) -> Dict[str, Any]:
    output: Dict[str, Any] = {
        "groups": groups_to_list(result.groups),
        "unfingerprintable": [
            {"path": str(item.track.path), "reason": item.reason}
            for item in result.unfingerprintable
        ],
        "directory_errors": [
            {"path": str(e.directory), "reason": e.reason}
            for e in scan.directory_errors
        ],
        "extraction_errors": [
            {"path": str(e.path), "reason": e.reason} for e in scan.extraction_errors
        ],
        "cancelled": scan.cancelled,
    }
    if include_tracks:
        output["tracks"] = [track.to_dict() for track in scan.tracks]
    if report is not None:
        output["report"] = report_to_dict(report)
    return output


def report_to_dict(report: DeletionReport) -> Dict[str, Any]:
    return {
        "mode": report.mode.value,
        "status": report.status.value,
        "batch_id": report.batch_id,
        "summary": report.summary(),
        "results": [
            {
                "path": str(r.path),
                "outcome": r.outcome.value,
                "reason": r.reason,
                "freed_bytes": r.freed_bytes,
            }
            for r in report.results
        ],
    }


def print_plan(plan: DeletionPlan, out: Optional[TextIO] = None) -> None:
    print(f"{Style.BRIGHT}Deletion plan:{Style.RESET_ALL}", file=out)
    for entry in plan.entries:
        print(
            f"  {Fore.RED}DELETE{Style.RESET_ALL} {entry.track.path} "
            f"{Style.DIM}(duplicate of {entry.keeper_path}){Style.RESET_ALL}",
            file=out,
        )
    for protected in plan.protected:
        print(
            f"  {Fore.YELLOW}KEEP  {Style.RESET_ALL} {protected.track.path} "
            f"{Style.DIM}({protected.rule}){Style.RESET_ALL}",
            file=out,
        )
    print(
        f"\n{len(plan.entries)} file(s) to delete, "
        f"{format_size(plan.total_bytes)} to free\n",
        file=out,
    )


def print_report(report: DeletionReport) -> None:
    """Print per-file outcomes and totals of a deletion run."""
    for result in report.results:
        color = OUTCOME_COLORS.get(result.outcome, "")
        reason = f" ({result.reason})" if result.reason else ""
        print(
            f"  {color}{result.outcome.value:<14}{Style.RESET_ALL} "
            f"{result.path}{Style.DIM}{reason}{Style.RESET_ALL}"
        )

    if report.mode == ExecutionMode.DRY_RUN:
        print(
            f"\n{Fore.CYAN}Dry run: {report.would_delete} file(s) would be deleted "
            f"({format_size(report.freed_bytes)}), {report.already_absent} already "
            f"absent, {report.skipped} skipped, {report.failed} failed."
            f"{Style.RESET_ALL}"
        )
        return

    color = Fore.GREEN if report.status == PlanStatus.EXECUTED else Fore.YELLOW
    print(
        f"\n{color}Deleted {report.deleted} duplicate track(s) "
        f"({format_size(report.freed_bytes)} freed), {report.already_absent} "
        f"already absent, {report.skipped} skipped, {report.failed} failed "
        f"[{report.status.value}].{Style.RESET_ALL}"
    )
    if report.batch_id:
        print(f"Staged in batch {report.batch_id} (restore with --restore).")


def get_parser() -> argparse.ArgumentParser:
    """
    Get the argument parser for trackdeleter.

    This function is used by tab completion tools (e.g., shtab) to generate
    completion scripts.
    """
    parser = argparse.ArgumentParser(
        prog="trackdeleter",
        description="Find duplicate music tracks and delete the redundant copies.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s ~/Music
  %(prog)s ~/Music --no-recurse --output json
  %(prog)s ~/Music --dry-run
  %(prog)s ~/Music --delete --stage --strategy keep-lossless
  %(prog)s ~/Music --save-plan plan.json
  %(prog)s --apply-plan plan.json --delete --yes
  %(prog)s ~/Music --restore 2025-10-02_15-30-45
        """,
    )

    path_arg = parser.add_argument(
        "path",
        nargs="?",
        type=Path,
        help="Music directory to scan",
    )
    if DIRECTORY is not None:
        path_arg.complete = DIRECTORY  # type: ignore

    scan = parser.add_argument_group("scanning")
    scan.add_argument(
        "--no-recurse",
        action="store_true",
        help="Only scan the top-level folder (subfolders are searched by default)",
    )
    scan.add_argument(
        "--ext",
        nargs="+",
        metavar="EXT",
        help="Audio file extensions to consider (default: mp3 wav flac m4a)",
    )
    scan.add_argument(
        "-w",
        "--workers",
        type=int,
        metavar="N",
        help="Metadata extraction threads (default: CPU count, 1 for sequential)",
    )
    scan.add_argument(
        "--no-cache", action="store_true", help="Do not use the metadata cache"
    )
    scan.add_argument(
        "--clear-cache", action="store_true", help="Clear the metadata cache and exit"
    )
    scan.add_argument(
        "--cache-cleanup",
        type=int,
        metavar="DAYS",
        help="Drop SQLite cache entries not used for DAYS days and exit",
    )
    scan.add_argument(
        "--cache-backend",
        choices=["sqlite", "json"],
        help="Cache backend type (default: sqlite)",
    )
    config_arg = scan.add_argument(
        "--config", type=Path, metavar="FILE", help="Use this config file"
    )
    if FILE is not None:
        config_arg.complete = FILE  # type: ignore
    scan.add_argument(
        "--init-config",
        action="store_true",
        help="Write the default config file (if missing) and exit",
    )
    scan.add_argument(
        "--no-progress", action="store_true", help="Disable progress output"
    )

    match = parser.add_argument_group("matching")
    match.add_argument(
        "-m",
        "--match-mode",
        choices=[mode.value for mode in MatchMode],
        help="metadata: tags + duration, strict: tags + duration + size, "
        "content: tags + identical file content (default: metadata)",
    )
    match.add_argument(
        "--tolerance",
        type=float,
        metavar="SECONDS",
        help="Allowed duration difference between duplicates (default: 1)",
    )

    output = parser.add_argument_group("output")
    output.add_argument(
        "-o",
        "--output",
        choices=["text", "json", "csv"],
        default="text",
        help="Output format (default: text)",
    )
    output.add_argument(
        "--list-tracks", action="store_true", help="Also list every scanned track"
    )
    output.add_argument(
        "--save-plan", type=Path, metavar="FILE", help="Write the deletion plan as JSON"
    )
    output.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Log more detail to stderr (-v info, -vv debug)",
    )

    delete = parser.add_argument_group("deletion")
    delete.add_argument(
        "--delete",
        action="store_true",
        help="Delete redundant tracks after confirmation",
    )
    delete.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be deleted without touching any file",
    )
    delete.add_argument(
        "-y", "--yes", action="store_true", help="Do not ask for confirmation"
    )
    delete.add_argument(
        "--stage",
        action="store_true",
        help="Move redundant tracks to a restorable staging folder",
    )
    delete.add_argument(
        "--strategy",
        choices=["eliminate-duplicates", "keep-lossless", "keep-format"],
        default="eliminate-duplicates",
        help="Built-in protection strategy (default: eliminate-duplicates)",
    )
    delete.add_argument(
        "--format",
        dest="keep_format",
        metavar="EXT",
        help="Format to protect with --strategy keep-format",
    )
    rules_arg = delete.add_argument(
        "--rules", type=Path, metavar="FILE", help="Protection rules (YAML or JSON)"
    )
    if FILE is not None:
        rules_arg.complete = FILE  # type: ignore
    delete.add_argument(
        "--apply-plan",
        type=Path,
        metavar="FILE",
        help="Use a plan saved with --save-plan instead of scanning",
    )
    delete.add_argument(
        "--delete-workers", type=int, metavar="N", help="Concurrent deletions"
    )

    staging = parser.add_argument_group("staging")
    staging.add_argument(
        "--list-batches",
        action="store_true",
        help="List staged deletion batches for PATH and exit",
    )
    staging.add_argument(
        "--restore", metavar="BATCH", help="Restore a staged batch for PATH and exit"
    )
    staging.add_argument(
        "--restore-to",
        type=Path,
        metavar="DIR",
        help="Restore into DIR instead of the original locations",
    )
    staging.add_argument(
        "--empty-staging",
        action="store_true",
        help="Permanently delete staged batches for PATH and exit",
    )
    staging.add_argument(
        "--older-than",
        type=int,
        metavar="DAYS",
        help="With --empty-staging, only delete batches older than DAYS",
    )
    staging.add_argument(
        "--keep-last",
        type=int,
        metavar="N",
        help="With --empty-staging, keep the N most recent batches",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    return get_parser().parse_args(argv)


def setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Command line flags win over the config file."""
    if args.no_recurse:
        settings.recurse = False
    if args.ext:
        settings.extensions = [ext.lower().lstrip(".") for ext in args.ext]
    if args.workers is not None:
        settings.scan_workers = args.workers
    if args.match_mode:
        settings.match_mode = MatchMode(args.match_mode)
    if args.tolerance is not None:
        settings.duration_tolerance = args.tolerance
    if args.delete_workers is not None:
        settings.delete_workers = args.delete_workers
    if args.stage:
        settings.use_staging = True
    if args.no_cache:
        settings.cache_enabled = False
    if args.cache_backend:
        settings.cache_backend = args.cache_backend
    return settings.validate()


def open_settings_cache(settings: Settings) -> CacheBackend:
    path = settings.cache_path or default_cache_path(
        get_config_dir(), settings.cache_backend
    )
    return open_cache(path, settings.cache_backend)


def install_stop_handler(stop_event: threading.Event) -> None:
    """First Ctrl+C requests a cooperative stop, a second one aborts."""

    def handler(signum: int, frame: Any) -> None:
        if stop_event.is_set():
            raise KeyboardInterrupt
        print(
            f"\n{Fore.YELLOW}Stopping after the current file(s)... "
            f"(Ctrl+C again to abort){Style.RESET_ALL}",
            file=sys.stderr,
        )
        stop_event.set()

    signal.signal(signal.SIGINT, handler)


def load_rules(args: argparse.Namespace) -> RuleEngine:
    if args.rules:
        return RuleEngine.load_from_config(args.rules)
    return RuleEngine.get_strategy(args.strategy, args.keep_format)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    args = parse_args(argv)
    setup_logging(args.verbose)

    if args.init_config:
        print(f"Config file: {ensure_config_exists(args.config)}")
        return EXIT_OK

    try:
        settings = apply_overrides(load_settings(args.config), args)
    except ConfigError as e:
        print_error(str(e))
        return EXIT_ERROR

    if args.clear_cache:
        cache = open_settings_cache(settings)
        cleared = cache.clear()
        cache.close()
        print("Cache cleared." if cleared else "Failed to clear cache.")
        return EXIT_OK if cleared else EXIT_ERROR

    if args.cache_cleanup is not None:
        return run_cache_cleanup(settings, args.cache_cleanup)

    if args.list_batches or args.restore or args.empty_staging:
        return run_staging_command(args)

    if args.delete and args.dry_run:
        print_error("--delete and --dry-run are mutually exclusive")
        return EXIT_ERROR

    stop_event = threading.Event()
    install_stop_handler(stop_event)

    try:
        if args.apply_plan:
            return run_saved_plan(args, settings, stop_event)
        if args.path is None:
            print_error("the following arguments are required: path")
            return EXIT_ERROR
        return run_scan(args, settings, stop_event)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.", file=sys.stderr)
        return EXIT_CANCELLED


def run_cache_cleanup(settings: Settings, max_age_days: int) -> int:
    if max_age_days < 0:
        print_error("--cache-cleanup DAYS must be >= 0")
        return EXIT_ERROR
    cache = open_settings_cache(settings)
    try:
        if not isinstance(cache, SQLiteCacheBackend):
            print_error("--cache-cleanup needs the sqlite cache backend")
            return EXIT_ERROR
        removed = cache.cleanup_old(max_age_days)
    finally:
        cache.close()
    print(f"Removed {removed} stale cache entr{'y' if removed == 1 else 'ies'}.")
    return EXIT_OK


def run_staging_command(args: argparse.Namespace) -> int:
    if args.path is None:
        print_error("PATH is required to locate the staging folder")
        return EXIT_ERROR

    staging_base = StagingManager.get_staging_base(args.path.resolve())

    if args.list_batches:
        batches = StagingManager.list_batches(staging_base)
        if not batches:
            print(f"No staged batches in {staging_base}")
        for batch in batches:
            print(
                f"{Path(batch['staging_path']).name}  "
                f"{batch['total_items_deleted']} file(s), "
                f"{format_size(batch['space_freed_bytes'])}"
            )
        return EXIT_OK

    if args.empty_staging:
        removed = StagingManager.empty_batches(
            staging_base, older_than_days=args.older_than, keep_last=args.keep_last
        )
        print(f"Permanently deleted {removed} batch(es).")
        return EXIT_OK

    try:
        restored = StagingManager.restore_batch(
            args.restore, staging_base, args.restore_to
        )
    except (FileNotFoundError, FileExistsError, ValueError) as e:
        print_error(str(e))
        return EXIT_ERROR
    print(f"{Fore.GREEN}Restored {restored} file(s).{Style.RESET_ALL}")
    return EXIT_OK


def run_scan(
    args: argparse.Namespace, settings: Settings, stop_event: threading.Event
) -> int:
    """Scan, group, report and optionally delete."""
    try:
        rules = load_rules(args)
    except (OSError, ValueError, KeyError) as e:
        print_error(f"Cannot load rules: {e}")
        return EXIT_ERROR

    cache = open_settings_cache(settings) if settings.cache_enabled else None
    extractor = MetadataExtractor(
        cache=cache, with_content_hash=settings.match_mode == MatchMode.CONTENT
    )
    walker = FileTreeWalker(
        args.path,
        recurse=settings.recurse,
        extensions=settings.extensions,
        stop_event=stop_event,
    )

    show_progress = not args.no_progress and args.output == "text"

    def progress(done: int, found: int) -> None:
        if done % 25 == 0:
            print(
                f"\r{Fore.CYAN}Read {done}/{found} files...{Style.RESET_ALL}",
                end="",
                flush=True,
                file=sys.stderr,
            )

    scanner = LibraryScanner(
        walker,
        extractor,
        max_workers=settings.scan_workers or None,
        stop_event=stop_event,
        progress=progress if show_progress else None,
    )

    try:
        scan = scanner.scan()
    except RootPathError as e:
        print_error(str(e))
        return EXIT_ERROR
    finally:
        if cache is not None:
            cache.close()

    if show_progress:
        print(
            f"\r{Fore.CYAN}Read {len(scan.tracks)} track(s)...{Fore.GREEN}done"
            f"{Style.RESET_ALL}",
            file=sys.stderr,
        )

    if scan.cancelled:
        print("Scan cancelled; no duplicates computed.", file=sys.stderr)
        return EXIT_CANCELLED

    grouper = DuplicateGrouper(settings.match_mode, settings.duration_tolerance)
    result = grouper.group(scan.tracks)

    plan = build_plan(result.groups, rules, root=args.path.resolve())

    if args.save_plan:
        PlanFile.save(plan, args.save_plan)

    wants_deletion = args.delete or args.dry_run

    if args.output == "json":
        report = None
        code = EXIT_OK
        if wants_deletion:
            report, code = execute_plan(args, settings, plan, stop_event, quiet=True)
        output = build_output_json(result, scan, args.list_tracks, report)
        print(json.dumps(output, indent=2))
        return code if wants_deletion else _found_code(result.groups)

    if args.output == "csv":
        write_groups_csv(result.groups, sys.stdout)
    else:
        if args.list_tracks:
            print_track_list(scan.tracks)
        format_output_text(result, scan)

    if args.save_plan:
        print(f"Plan saved to {args.save_plan}")

    if not wants_deletion:
        return _found_code(result.groups)

    _, code = execute_plan(args, settings, plan, stop_event)
    return code


def _found_code(groups: List[DuplicateGroup]) -> int:
    # Non-zero when duplicates exist (for scripting)
    return EXIT_DUPLICATES_FOUND if groups else EXIT_OK


def run_saved_plan(
    args: argparse.Namespace, settings: Settings, stop_event: threading.Event
) -> int:
    try:
        plan = PlanFile.load(args.apply_plan)
    except (OSError, ValueError) as e:
        print_error(str(e))
        return EXIT_ERROR

    if not (args.delete or args.dry_run):
        print_plan(plan)
        print("Use --dry-run or --delete to apply this plan.")
        return EXIT_OK

    _, code = execute_plan(args, settings, plan, stop_event, quiet=args.output == "json")
    return code


def execute_plan(
    args: argparse.Namespace,
    settings: Settings,
    plan: DeletionPlan,
    stop_event: threading.Event,
    quiet: bool = False,
) -> Tuple[Optional[DeletionReport], int]:
    """
    Run a plan in dry-run or commit mode.

    Returns:
        Tuple of (report or None if the user declined, exit code)
    """
    if not plan.entries and not plan.protected:
        if not quiet:
            print("No duplicates to delete.")
        return None, EXIT_OK

    # In quiet (JSON) mode stdout carries only the document; prompts go to stderr
    out = sys.stderr if quiet else None
    needs_answer = not args.dry_run and not args.yes
    if not quiet or needs_answer:
        print_plan(plan, out)

    staging = None
    if settings.use_staging and not args.dry_run and plan.entries:
        # Plans saved before the root was recorded fall back to the first track
        root = args.path or plan.root or plan.entries[0].track.path.parent
        staging = StagingManager(root, command=" ".join(sys.argv))

    executor = DeletionExecutor(
        max_workers=settings.delete_workers, stop_event=stop_event, staging=staging
    )

    try:
        if args.dry_run:
            report = executor.execute(plan, ExecutionMode.DRY_RUN)
        else:
            if needs_answer and not confirm(len(plan.entries), out):
                print("Deletion cancelled.", file=out)
                return None, EXIT_OK
            plan.confirm()
            report = executor.execute(plan, ExecutionMode.COMMIT)
    except PlanStateError as e:
        print_error(str(e))
        return None, EXIT_ERROR

    if not quiet:
        print_report(report)

    if stop_event.is_set():
        return report, EXIT_CANCELLED
    if report.mode == ExecutionMode.COMMIT and report.status != PlanStatus.EXECUTED:
        return report, EXIT_INCOMPLETE
    return report, EXIT_OK


def confirm(count: int, out: Optional[TextIO] = None) -> bool:
    print(f"Delete {count} file(s)? [y/N]: ", end="", flush=True, file=out)
    answer = input().strip().lower()
    return answer in ("y", "yes")


if __name__ == "__main__":
    sys.exit(main())
