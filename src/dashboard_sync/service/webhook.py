"""GitLab push webhook: push the dashboards humans committed to the remote store."""

import hmac
import threading
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Header, HTTPException, Request, status
from loguru import logger
from pydantic import ValidationError

from dashboard_sync import DEFAULT_BRANCH
from dashboard_sync.errors import DashboardSyncError, RepositoryError
from dashboard_sync.repository.git_repository import GitRepository
from dashboard_sync.service.models import ContainsMessage, GitLabPushEvent
from dashboard_sync.sync.changeset import ChangeSet
from dashboard_sync.sync.pusher import PushReconciler, PushReport

PUSH_EVENT = "Push Hook"
"""Value of the X-Gitlab-Event header for push events."""

_NULL_REVISION = "0" * 40


class WebhookHandler:
    """Turns GitLab push events into push passes, one event at a time."""

    def __init__(
        self,
        *,
        repository: GitRepository,
        pusher: PushReconciler,
        bot_email: str,
    ) -> None:
        """Initialize the handler.

        Args:
            repository: The repository the events are about. It must already be cloned, and be the
                working tree the pusher's puller uses.
            pusher: Push reconciler run for every event.
            bot_email: Email of the bot identity, whose commits are never pushed.
        """
        self.repository = repository
        self.pusher = pusher
        self.bot_email = bot_email
        self._lock = threading.Lock()

    def _previous_contents(self, revision: str) -> dict[str, bytes]:
        if not revision or revision == _NULL_REVISION:
            return {}
        try:
            return self.repository.files_at(revision)
        except RepositoryError as e:
            logger.warning(f"Revision {revision} is unknown, removed dashboards cannot be deleted: {e}")
            return {}

    def handle_push(self, event: GitLabPushEvent) -> PushReport | None:
        """Push the changes carried by a push event to the remote store.

        Events are serialized: an event is handled to completion, trailing pull included, before the
        next one starts.

        Returns:
            The report of the push pass, or None if the event carried nothing to push.

        Raises:
            DashboardSyncError: If synchronising the repository or the trailing pull pass failed.
        """
        with self._lock:
            latest_revision = self.repository.sync(allow_clone=False)

            added: list[str] = []
            modified: list[str] = []
            removed: list[str] = []
            for commit in event.commits:
                if commit.author.email == self.bot_email:
                    logger.info(f"Commit {commit.id[:8]} was made by {self.bot_email}, skipping")
                    continue
                added.extend(commit.added)
                modified.extend(commit.modified)
                removed.extend(commit.removed)

            current_contents = self.repository.files_at(latest_revision) if latest_revision else {}
            change_set = ChangeSet.from_paths(
                added=added,
                modified=modified,
                removed=removed,
                current_contents=current_contents,
                previous_contents=self._previous_contents(event.before) if removed else {},
            )

            if change_set.is_empty():
                logger.info(f"Nothing to push for {event.ref} ({event.before[:8]}..{event.after[:8]})")
                return None

            return self.pusher.run(change_set)

    def process_event(self, event: GitLabPushEvent) -> None:
        """Handle a push event in the background, logging the errors nobody else will see."""
        try:
            report = self.handle_push(event)
        except DashboardSyncError as e:
            logger.error(f"Failed to handle the push event on {event.ref}: {e}")
            return

        if report is not None and report.has_failures():
            logger.warning(f"{len(report.failures)} dashboards could not be pushed")


def create_webhook_router(
    handler: WebhookHandler,
    *,
    path: str,
    secret: str,
    branch: str = DEFAULT_BRANCH,
) -> APIRouter:
    """Build the router receiving GitLab push events on `path`.

    Args:
        handler: Handler the accepted events are given to.
        path: HTTP path of the webhook.
        secret: Token GitLab must send in the X-Gitlab-Token header.
        branch: Only push events on this branch are handled.
    """
    router = APIRouter()
    branch_ref = f"refs/heads/{branch}"

    @router.post(
        path,
        status_code=status.HTTP_202_ACCEPTED,
        summary="Receive a GitLab push event",
        responses={401: {"description": "Invalid token"}, 400: {"description": "Invalid payload"}},
    )
    async def receive_gitlab_event(
        request: Request,
        background_tasks: BackgroundTasks,
        x_gitlab_token: Annotated[str | None, Header()] = None,
        x_gitlab_event: Annotated[str | None, Header()] = None,
    ) -> ContainsMessage:
        """Queue the handling of a GitLab push event. Other events are acknowledged and ignored."""
        if x_gitlab_token is None or not hmac.compare_digest(x_gitlab_token.encode(), secret.encode()):
            logger.warning(f"Rejected a webhook call from {request.client.host if request.client else '?'}")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

        if x_gitlab_event != PUSH_EVENT:
            logger.debug(f"Ignoring GitLab event {x_gitlab_event!r}")
            return ContainsMessage(message=f"Ignored event {x_gitlab_event}")

        try:
            event = GitLabPushEvent.model_validate(await request.json())
        except (ValueError, ValidationError) as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid push event: {e}") from e

        if event.ref != branch_ref:
            logger.debug(f"Ignoring push on {event.ref}, only {branch_ref} is synchronised")
            return ContainsMessage(message=f"Ignored push on {event.ref}")

        logger.info(f"Received a push on {event.ref} with {len(event.commits)} commits")
        background_tasks.add_task(handler.process_event, event)
        return ContainsMessage(message="Push event accepted")

    return router
