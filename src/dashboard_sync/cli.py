r"""Command line entry point of dashboard-sync.

Two commands are available:
- **pull**: mirror the Grafana dashboards into the repository, once or every `--interval` seconds
- **push**: listen for repository changes (GitLab webhook or polling) and push them to Grafana

Usage:
    dashboard-sync [--config FILE] [--verbose] pull [--interval SECONDS]
    dashboard-sync [--config FILE] [--verbose] push [--delete-removed]

Environment variables:
    DASHBOARD_SYNC_GRAFANA__BASE_URL - Grafana base URL
    DASHBOARD_SYNC_GRAFANA__API_KEY - Grafana API key
    Any other setting can be given the same way, values from the configuration file win.

Examples:
    # Pull once
    dashboard-sync --config config.yaml pull

    # Pull every 10 minutes
    dashboard-sync --config config.yaml pull --interval 600

    # Push repository changes to Grafana, deleting the dashboards whose file was removed
    dashboard-sync --config config.yaml push --delete-removed
"""

from __future__ import annotations

import argparse
import sys
import time
from collections.abc import Sequence

import uvicorn
import yaml
from loguru import logger
from pydantic import ValidationError

from dashboard_sync import DashboardSyncSettings, PusherMode, load_settings
from dashboard_sync.backends.grafana_backend import GrafanaBackend
from dashboard_sync.errors import DashboardSyncError, RemoteError
from dashboard_sync.logging_config import configure_logger
from dashboard_sync.repository import DashboardWorkingTree, GitRepository, PlainDirectory
from dashboard_sync.service.app import create_app
from dashboard_sync.service.webhook import WebhookHandler
from dashboard_sync.sync.ignore_filter import IgnoreFilter
from dashboard_sync.sync.poller import RepositoryPoller
from dashboard_sync.sync.puller import PullReconciler
from dashboard_sync.sync.pusher import PushReconciler


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser of the `dashboard-sync` command."""
    parser = argparse.ArgumentParser(
        prog="dashboard-sync",
        description="Synchronise Grafana dashboards with a git repository",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        "--config",
        type=str,
        default="config.yaml",
        help="Path to the YAML configuration file (default: config.yaml)",
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        default=False,
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    pull_parser = subparsers.add_parser("pull", help="Pull the Grafana dashboards into the repository")
    pull_parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Pull again every INTERVAL seconds instead of exiting after the first pull",
    )

    push_parser = subparsers.add_parser("push", help="Push repository changes to Grafana")
    push_parser.add_argument(
        "--delete-removed",
        action="store_true",
        default=False,
        help="Delete the dashboards whose file was removed from the repository",
    )

    return parser


def build_working_tree(settings: DashboardSyncSettings) -> DashboardWorkingTree:
    """Return the git repository if one is configured, the plain directory otherwise."""
    if settings.git is not None:
        return GitRepository.from_settings(settings.git)
    if settings.simple_sync is not None:
        return PlainDirectory(settings.simple_sync.sync_path)
    raise ValueError("Neither git nor simple_sync settings are set")


def build_store(settings: DashboardSyncSettings) -> GrafanaBackend:
    """Return a Grafana client configured from the settings."""
    return GrafanaBackend(
        base_url=settings.grafana.base_url,
        api_key=settings.grafana.api_key,
        timeout_seconds=settings.grafana.timeout_seconds,
    )


def run_pull(settings: DashboardSyncSettings, *, interval: int | None = None) -> int:
    """Run the pull reconciler once, or forever every `interval` seconds.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    with build_store(settings) as store:
        puller = PullReconciler(
            store=store,
            working_tree=build_working_tree(settings),
            ignore_filter=IgnoreFilter(settings.grafana.ignore_prefix),
        )

        if interval is None:
            try:
                puller.run()
            except DashboardSyncError as e:
                logger.error(f"Pull failed: {e}")
                return 1
            return 0

        logger.info(f"Pulling every {interval} seconds. Press Ctrl+C to stop.")
        try:
            while True:
                try:
                    puller.run()
                except RemoteError as e:
                    logger.error(f"Pull failed, retrying in {interval} seconds: {e}")
                time.sleep(interval)
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, stopping")
        except DashboardSyncError as e:
            logger.error(f"Pull failed: {e}")
            return 1

    return 0


def run_push(settings: DashboardSyncSettings, *, delete_removed: bool = False) -> int:
    """Start the pusher in the mode the settings select.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    if settings.git is None or settings.pusher is None:
        logger.info("The pusher needs both git and pusher settings, nothing to do")
        return 0

    pusher_config = settings.pusher.config
    repository = GitRepository.from_settings(settings.git)
    ignore_filter = IgnoreFilter(settings.grafana.ignore_prefix)

    with build_store(settings) as store:
        pusher = PushReconciler(
            store=store,
            puller=PullReconciler(store=store, working_tree=repository, ignore_filter=ignore_filter),
            ignore_filter=ignore_filter,
            delete_removed=delete_removed,
        )

        try:
            if settings.pusher.sync_mode == PusherMode.webhook:
                repository.sync(allow_clone=True)
                handler = WebhookHandler(repository=repository, pusher=pusher, bot_email=settings.bot_email)
                app = create_app(
                    handler,
                    path=pusher_config.path or "/",
                    secret=pusher_config.secret or "",
                    branch=settings.git.branch,
                )
                logger.info(f"Listening for GitLab push events on {pusher_config.interface}:{pusher_config.port}")
                uvicorn.run(app, host=pusher_config.interface or "0.0.0.0", port=pusher_config.port or 8080)
                return 0

            poller = RepositoryPoller(
                repository=repository,
                pusher=pusher,
                interval_seconds=pusher_config.interval or 60,
                bot_email=settings.bot_email,
            )
            return poller.run()
        except DashboardSyncError as e:
            logger.error(f"Pusher stopped: {e}")
            return 1
        finally:
            repository.close()


def main(argv: Sequence[str] | None = None) -> int:
    """Enter the dashboard-sync command line.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    args = build_parser().parse_args(argv)

    configure_logger("DEBUG" if args.verbose else "INFO")

    try:
        settings = load_settings(args.config)
    except (OSError, yaml.YAMLError, ValidationError, ValueError) as e:
        logger.error(f"Failed to load the configuration from {args.config}: {e}")
        return 1

    if args.command == "pull":
        return run_pull(settings, interval=args.interval)

    return run_push(settings, delete_removed=args.delete_removed)


if __name__ == "__main__":
    sys.exit(main())
