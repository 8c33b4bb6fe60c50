"""
Command-line interface for camsort.
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress

from .client import DropboxClient
from .config import Config, Settings
from .constants import PROGRAM, get_console, get_logger
from .errors import CamsortError, ConfigError, PlannerError, RemoteError
from .events import EventBus
from .history import RunHistory
from .mirror import LocalMirror
from .organizer import Organizer
from .progress import ConsoleReporter, ProgressContext, print_plan
from .report import RunSummary

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_PARTIAL = 2
EXIT_CANCELLED = 130


def positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Not a number: {value}")
    if number < 0:
        raise argparse.ArgumentTypeError(f"Must not be negative: {value}")
    return number


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Not an integer: {value}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"Must be at least 1: {value}")
    return number


def create_parser(config: Config) -> argparse.ArgumentParser:
    """Create argument parser with dynamic defaults from config."""
    root_help = f"Remote Camera Uploads directory (default: {config.get_root()})"

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--root", "-r", help=root_help)
    common.add_argument("--dry-run", "-n", action="store_true",
                        help="Show what would be moved without changing anything")
    common.add_argument("--verbose", "-v", action="store_true",
                        help="Enable verbose logging")

    polling = argparse.ArgumentParser(add_help=False)
    polling.add_argument("--poll-interval", type=positive_float, metavar="SECONDS",
                         help=f"Seconds between job status rounds (default: {config.get_poll_interval()})")
    polling.add_argument("--max-rounds", type=positive_int, metavar="N",
                         help="Give up on jobs still pending after N polling rounds")
    polling.add_argument("--timeout", type=positive_float, metavar="SECONDS",
                         help="Give up on jobs still pending after this many seconds")
    polling.add_argument("--workers", "-w", type=positive_int, metavar="N",
                         help="Concurrent status checks per polling round (default: 1)")

    parser = argparse.ArgumentParser(
        prog=PROGRAM,
        description="Organize a cloud Camera Uploads folder by month and capture device",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  {PROGRAM} dates
  {PROGRAM} devices --latest-only
  {PROGRAM} mirror ~/Pictures/CameraUploads --dry-run
        """
    )
    parser.add_argument("--version", "-V", action="store_true",
                        help=f"Display the version number of {PROGRAM} and exit")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.add_parser("dates", parents=[common, polling],
                          help="Move dated files into YYYY-MM folders")
    devices = subparsers.add_parser("devices", parents=[common, polling],
                                    help="Route files of each month folder by capture device")
    devices.add_argument("--latest-only", action="store_true",
                         help="Only process the most recent month folder")
    mirror = subparsers.add_parser("mirror", parents=[common],
                                   help="Download the remote tree to local disk")
    mirror.add_argument("dest", nargs="?",
                        help=f"Local directory (default: {config.get_download_root() or 'none saved'})")

    return parser


def setup_logging(verbose: bool) -> logging.Logger:
    """Console logging through rich; WARNING and above unless verbose."""
    console_handler = RichHandler(console=get_console(), rich_tracebacks=True)
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger = get_logger()
    for handler in logger.handlers:
        handler.close()
    logger.handlers = [console_handler]
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger


def install_interrupt_handler(cancel_event: threading.Event):
    """First Ctrl-C cancels the run gracefully, a second one interrupts it."""
    if threading.current_thread() is not threading.main_thread():
        return None

    def handler(signum, frame):
        if cancel_event.is_set():
            raise KeyboardInterrupt
        get_console().print("\n[yellow]Cancelling, waiting for the current round...[/yellow]")
        cancel_event.set()

    return signal.signal(signal.SIGINT, handler)


def exit_code_for(summary: RunSummary) -> int:
    if summary.cancelled:
        return EXIT_CANCELLED
    return EXIT_OK if summary.ok else EXIT_PARTIAL


def main(argv: Optional[List[str]] = None, config_path: Optional[Path] = None) -> int:
    """Main entry point.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])
        config_path: Optional path to config file (for testing)
    """
    config = Config(config_path=config_path)
    parser = create_parser(config)
    args = parser.parse_args(argv)

    if args.version:
        from . import __version__
        print(f"{PROGRAM} {__version__}")
        return EXIT_OK

    if not args.command:
        parser.print_help()
        return EXIT_FATAL

    console = get_console()
    logger = setup_logging(args.verbose)

    download_root = None
    if args.command == "mirror":
        dest = args.dest or config.get_download_root()
        if not dest:
            parser.error("A local destination directory is required")
        download_root = Path(dest).expanduser().resolve()
        if args.dest:
            config.update_download_root(str(download_root))

    try:
        settings = Settings.from_config(
            config,
            root=args.root,
            download_root=download_root,
            poll_interval=getattr(args, "poll_interval", None),
            max_poll_rounds=getattr(args, "max_rounds", None),
            poll_timeout=getattr(args, "timeout", None),
            workers=getattr(args, "workers", None),
        )
    except ConfigError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return EXIT_FATAL

    client = DropboxClient(settings.access_token)

    if args.command == "mirror":
        return run_mirror(client, settings, args.dry_run, console)

    history = RunHistory(settings.program_root, dry_run=args.dry_run)
    history.setup_run_logger(logger)

    cancel_event = threading.Event()
    events = EventBus()
    events.subscribe(ConsoleReporter(console, verbose=args.verbose))
    organizer = Organizer(client, settings, events=events, cancel_event=cancel_event,
                          history=history, dry_run=args.dry_run)

    previous_handler = install_interrupt_handler(cancel_event)
    try:
        if args.dry_run:
            if args.command == "dates":
                plans = [organizer.plan_by_date()]
            else:
                plans = organizer.plan_by_device(latest_only=args.latest_only)
            for plan in plans:
                print_plan(plan, console)
            return EXIT_OK

        if args.command == "dates":
            summary = organizer.organize_by_date()
        else:
            summary = organizer.organize_by_device(latest_only=args.latest_only)
        return exit_code_for(summary)

    except PlannerError as e:
        console.print(f"\n[red]Aborted before moving anything: {escape(str(e))}[/red]")
        return EXIT_FATAL
    except RemoteError as e:
        console.print(f"\n[red]Remote error: {escape(str(e))}[/red]")
        return EXIT_FATAL
    except CamsortError as e:
        console.print(f"\n[red]Fatal error: {escape(str(e))}[/red]")
        return EXIT_FATAL
    except KeyboardInterrupt:
        console.print("\n[red]Operation cancelled by user[/red]")
        return EXIT_CANCELLED
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)


def run_mirror(client: DropboxClient, settings: Settings, dry_run: bool, console) -> int:
    mirror = LocalMirror(client, settings.download_root, dry_run=dry_run)
    try:
        with Progress(console=console) as progress:
            task = progress.add_task("Mirroring...", total=None)
            stats = mirror.mirror(settings.root, ProgressContext(progress, task))
    except RemoteError as e:
        console.print(f"\n[red]Remote error: {escape(str(e))}[/red]")
        return EXIT_FATAL
    except KeyboardInterrupt:
        console.print("\n[red]Operation cancelled by user[/red]")
        return EXIT_CANCELLED

    size_mb = stats.total_bytes / (1024 * 1024)
    console.print(f"Downloaded {stats.downloaded} files ({size_mb:.1f} MB), "
                  f"{stats.skipped} up to date, {stats.failed} failed")
    return EXIT_OK if stats.failed == 0 else EXIT_PARTIAL


if __name__ == "__main__":
    sys.exit(main())
