"""Errors raised while reconciling dashboards between Grafana and the repository."""

from __future__ import annotations


class DashboardSyncError(Exception):
    """Base class for every error raised by dashboard_sync."""


class RemoteError(DashboardSyncError):
    """Talking to the remote dashboard store failed."""


class RemoteUnavailable(RemoteError):
    """The remote dashboard store could not be reached, or refused our credentials."""


class RemoteRejected(RemoteError):
    """The remote dashboard store answered with a failure that isn't a 404."""

    def __init__(self, message: str, *, status_code: int | None = None, identifier: str | None = None) -> None:
        """Initialize the error.

        Args:
            message: Human-readable description, usually Grafana's own message.
            status_code: HTTP status code of the response, if any.
            identifier: Slug of the dashboard concerned, if known.
        """
        super().__init__(message)
        self.status_code = status_code
        self.identifier = identifier


class NotFound(RemoteError):
    """The requested dashboard does not exist in the remote store."""

    def __init__(self, identifier: str) -> None:
        """Initialize the error with the slug that could not be found."""
        super().__init__(f"Dashboard {identifier!r} not found (404)")
        self.identifier = identifier


class RepositoryError(DashboardSyncError):
    """A repository operation failed."""


class ContentMalformed(DashboardSyncError):
    """A dashboard file's content cannot yield a title or slug."""

    def __init__(self, path: str, reason: str) -> None:
        """Initialize the error.

        Args:
            path: Repository path (or identifier) of the offending content.
            reason: Why the content could not be used.
        """
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class NotReadable(DashboardSyncError):
    """The version ledger exists but cannot be read."""
