"""Polling trigger: watch the git repository for new commits and push them to the remote store."""

from __future__ import annotations

import signal
import time
from collections.abc import Callable
from typing import Any

from loguru import logger

from dashboard_sync.errors import RemoteError
from dashboard_sync.repository.git_repository import GitRepository
from dashboard_sync.sync.changeset import ChangeSet
from dashboard_sync.sync.pusher import PushReconciler, PushReport


class RepositoryPoller:
    """Polls the git remote at a fixed interval and runs a push pass for every new human commit.

    The revision and file contents seen at the previous iteration are kept in memory, so the content
    of removed dashboards is still known when the deletion has to be pushed.
    """

    def __init__(
        self,
        *,
        repository: GitRepository,
        pusher: PushReconciler,
        interval_seconds: float,
        bot_email: str,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the poller.

        Args:
            repository: The repository to watch. It must be the working tree the pusher's puller uses.
            pusher: Push reconciler run on every detected change.
            interval_seconds: Seconds to wait between two polls.
            bot_email: Email of the bot identity, whose commits are never pushed.
            sleep: Function used to wait between two polls.
        """
        self.repository = repository
        self.pusher = pusher
        self.interval_seconds = interval_seconds
        self.bot_email = bot_email
        self._sleep = sleep

        self.previous_revision: str | None = None
        self.previous_contents: dict[str, bytes] = {}
        self.running = False

    def _signal_handler(self, signum: int, frame: Any) -> None:  # noqa: ANN401
        signal_name = "SIGINT" if signum == signal.SIGINT else "SIGTERM"
        logger.info(f"{signal_name} received. Stopping the poller after the current iteration...")
        self.running = False

    def start(self) -> None:
        """Clone or update the repository and remember the state changes will be computed against.

        Raises:
            RepositoryError: If the repository couldn't be synchronised.
        """
        self.previous_revision = self.repository.sync(allow_clone=True)
        self.previous_contents = (
            self.repository.files_at(self.previous_revision) if self.previous_revision else {}
        )
        logger.info(f"Watching {self.repository.remote_url} from revision {self.previous_revision}")

    def poll_once(self) -> PushReport | None:
        """Pull the remote and push whatever humans committed since the previous iteration.

        Returns:
            The report of the push pass, or None if nothing had to be pushed.

        Raises:
            DashboardSyncError: If synchronising the repository or the trailing pull pass failed.
        """
        latest_revision = self.repository.sync(allow_clone=False)
        if latest_revision is None or latest_revision == self.previous_revision:
            logger.debug(f"No new commit (revision: {latest_revision})")
            return None

        logger.info(f"New revision {latest_revision} (previous: {self.previous_revision})")

        modified, removed = self.repository.changed_paths(
            self.previous_revision,
            latest_revision,
            exclude_author=self.bot_email,
        )
        current_contents = self.repository.files_at(latest_revision)
        change_set = ChangeSet.from_paths(
            modified=modified,
            removed=removed,
            current_contents=current_contents,
            previous_contents=self.previous_contents,
        )

        # Commits made by the trailing pull are authored by the bot and skipped at the next iteration.
        self.previous_revision = latest_revision
        self.previous_contents = current_contents

        if change_set.is_empty():
            logger.info("Only automated commits since the previous iteration, nothing to push")
            return None

        return self.pusher.run(change_set)

    def run(self) -> int:
        """Run the polling loop until a signal stops it.

        Remote store errors are logged and retried at the next iteration. Repository errors, and
        anything unexpected, propagate and end the loop.

        Returns:
            Exit code, 0 when the loop was stopped by a signal.
        """
        previous_handlers = {
            signum: signal.signal(signum, self._signal_handler) for signum in (signal.SIGINT, signal.SIGTERM)
        }

        try:
            self.running = True
            self.start()

            logger.info(f"Polling every {self.interval_seconds} seconds. Press Ctrl+C to stop.")

            iteration = 0
            while self.running:
                iteration += 1
                logger.debug(f"Poll iteration {iteration}")

                try:
                    report = self.poll_once()
                except RemoteError as e:
                    logger.error(f"Push pass failed, retrying at the next iteration: {e}")
                else:
                    if report is not None and report.has_failures():
                        logger.warning(f"{len(report.failures)} dashboards could not be pushed")

                if self.running:
                    logger.debug(f"Sleeping for {self.interval_seconds} seconds...")
                    self._sleep(self.interval_seconds)
        finally:
            self.running = False
            for signum, handler in previous_handlers.items():
                signal.signal(signum, handler)

        logger.info("Poller stopped")
        return 0
