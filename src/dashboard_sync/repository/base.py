"""Abstract base class for the working trees dashboards are pulled into."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path


class DashboardWorkingTree(ABC):
    """A directory holding one `<identifier>.json` file per dashboard plus the version ledger.

    The pull reconciler writes files into `path`, then asks the working tree to record and publish them.
    """

    def __init__(self, path: str | Path) -> None:
        """Initialize the working tree rooted at `path`."""
        self._path = Path(path)

    @property
    def path(self) -> Path:
        """Root directory of the working tree."""
        return self._path

    @abstractmethod
    def sync(self, *, allow_clone: bool) -> str | None:
        """Bring the working tree up to date with its remote.

        Args:
            allow_clone: Whether the working tree may be created from scratch if it doesn't exist yet.

        Returns:
            The revision the working tree is at afterwards, or None if it has none.

        Raises:
            RepositoryError: If the working tree couldn't be synchronised.
        """

    @abstractmethod
    def commit(self, message: str, paths: Sequence[str]) -> str | None:
        """Record the given paths (relative to `path`) with the bot identity.

        Returns:
            The new revision, or None if nothing was recorded.

        Raises:
            RepositoryError: If the commit failed.
        """

    @abstractmethod
    def push(self) -> None:
        """Publish recorded changes to the remote.

        "Nothing to push", an empty remote and a remote that already advanced are not errors.

        Raises:
            RepositoryError: For any other failure.
        """
