"""Command-line entry point.

Subcommands:
    sync      scan the watch folders, then reconcile the library with the remote
    issues    list files that failed to upload
    uploaded  list files recorded as uploaded
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from collections.abc import Sequence

from tunesync.config import Settings, get_settings
from tunesync.domain.exceptions import ConfigurationError
from tunesync.infrastructure.lifecycle import TuneSyncApp, lifespan
from tunesync.infrastructure.observability.logging import configure_logging

logger = logging.getLogger(__name__)


def _parse_arguments(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="tunesync",
        description="Keep a local music library in step with a remote music library",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--log-level", default=None, help="Override TUNESYNC_LOG_LEVEL")
    parser.add_argument(
        "--json-logs", action="store_true", help="Emit structured JSON log lines"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sp = subparsers.add_parser("sync", help="Scan watch folders and reconcile")
    sp.add_argument(
        "folders",
        nargs="*",
        help="Watch folders (defaults to TUNESYNC_UPLOADER__WATCH_FOLDERS)",
    )
    sp.add_argument("--prefetch", action="store_true", help="Warm the check cache ahead")
    sp.add_argument("--no-scan", action="store_true", help="Skip the folder scan")

    subparsers.add_parser("issues", help="List files that failed to upload")
    subparsers.add_parser("uploaded", help="List uploaded files, most recent first")
    return parser.parse_args(argv)


def _install_abort_handlers(app: TuneSyncApp) -> None:
    # Ctrl+C raises the abort signal, the worker stops at its next suspension point
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, app.control.abort)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handler support
            logger.debug("Cannot install handler for %s", sig)


async def _run_sync(app: TuneSyncApp, folders: list[str], scan: bool) -> int:
    if not await app.remote.check_authenticated(app.settings.remote.auth_cookie):
        logger.error("Remote session is not authenticated, set TUNESYNC_REMOTE__AUTH_COOKIE")
        return 2

    if scan:
        summary = await app.scanner.scan(folders)
        logger.info(
            "Scan complete: %d files, %d new, %d revived",
            summary.files_found,
            summary.added,
            summary.revived,
        )

    report = await app.worker.process()
    print(json.dumps(report.to_dict(), indent=2))
    return 130 if report.aborted else 0


async def _run_listing(app: TuneSyncApp, command: str) -> int:
    if command == "issues":
        entries = await app.repository.load_issues()
        for entry in entries:
            print(f"{entry.path}\t{entry.error_reason or ''}")
    else:
        entries = await app.repository.load_uploaded()
        for entry in entries:
            uploaded_at = entry.last_upload.isoformat() if entry.last_upload else ""
            print(f"{uploaded_at}\t{entry.path}")
    return 0


async def _main_async(args: argparse.Namespace, settings: Settings) -> int:
    async with lifespan(settings) as app:
        _install_abort_handlers(app)
        if args.command == "sync":
            folders = list(args.folders) or settings.uploader.watch_folders
            return await _run_sync(app, folders, scan=not args.no_scan)
        return await _run_listing(app, args.command)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_arguments(argv)
    settings = get_settings()
    if getattr(args, "prefetch", False):
        settings = settings.model_copy(
            update={
                "uploader": settings.uploader.model_copy(update={"prefetch_enabled": True})
            }
        )

    configure_logging(
        log_level=args.log_level or settings.log_level,
        json_format=args.json_logs or settings.log_json,
        app_name=settings.app_name,
    )

    try:
        return asyncio.run(_main_async(args, settings))
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
