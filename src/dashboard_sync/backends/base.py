"""Abstract base class for remote dashboard stores."""

from __future__ import annotations

from abc import ABC, abstractmethod

from dashboard_sync.records import Dashboard, DashboardWriteResult


class DashboardStore(ABC):
    """Abstract interface for the remote store the dashboards are mirrored from.

    The reconcilers only rely on these four calls. Implementations translate every failure into
    one of the errors of `dashboard_sync.errors`:

    - `RemoteUnavailable` when the store can't be reached or refuses the credentials
    - `NotFound` when the requested dashboard doesn't exist
    - `RemoteRejected` for any other failure

    Implementations never retry on their own; retry cadence belongs to whoever triggers the passes.
    """

    @abstractmethod
    def list_identifiers(self) -> list[str]:
        """Return the identifier (slug) of every dashboard known to the store."""

    @abstractmethod
    def get(self, identifier: str) -> Dashboard:
        """Fetch a dashboard, along with its current version.

        Raises:
            NotFound: If no dashboard has this identifier.
        """

    @abstractmethod
    def create_or_update(self, content: bytes) -> DashboardWriteResult:
        """Create the dashboard described by `content`, or overwrite it if it exists.

        Whether this is a creation or an update is decided by the store from the content itself
        (Grafana looks at the embedded `id`/`uid`), never from a filename.

        Raises:
            RemoteRejected: If the store refused the write.
        """

    @abstractmethod
    def delete(self, identifier: str) -> None:
        """Delete the dashboard with the given identifier.

        Raises:
            NotFound: If no dashboard has this identifier.
        """
