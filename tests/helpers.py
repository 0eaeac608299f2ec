import json
from collections.abc import Sequence
from pathlib import Path
from types import TracebackType
from typing import Any, override

from git import Actor

from dashboard_sync import DEFAULT_BOT_EMAIL, DEFAULT_BOT_NAME
from dashboard_sync.backends.base import DashboardStore
from dashboard_sync.errors import DashboardSyncError, NotFound
from dashboard_sync.records import Dashboard, DashboardWriteResult
from dashboard_sync.repository.base import DashboardWorkingTree
from dashboard_sync.util import dashboard_title, slugify

HUMAN = Actor("Jane Operator", "jane@example.com")
BOT = Actor(DEFAULT_BOT_NAME, DEFAULT_BOT_EMAIL)


def dashboard_json(title: str, **extra: Any) -> bytes:  # noqa: ANN401
    """Return the JSON description of a minimal dashboard."""
    return json.dumps({"title": title, "panels": [], **extra}).encode("utf-8")


def make_dashboard(title: str, version: int, **extra: Any) -> Dashboard:  # noqa: ANN401
    """Return a dashboard as the remote store would hand it out."""
    return Dashboard.from_content(dashboard_json(title, **extra), version)


class FakeStore(DashboardStore):
    """In-memory dashboard store assigning versions like Grafana does."""

    def __init__(self, dashboards: Sequence[Dashboard] = ()) -> None:
        """Initialize with the dashboards the store already holds."""
        self.dashboards: dict[str, Dashboard] = {dashboard.identifier: dashboard for dashboard in dashboards}
        self.failures: dict[tuple[str, str], DashboardSyncError] = {}
        """Errors to raise, keyed by (operation, identifier)."""
        self.calls: list[tuple[str, str]] = []

    def fail(self, operation: str, identifier: str, error: DashboardSyncError) -> None:
        """Make the given operation raise `error` for `identifier`."""
        self.failures[(operation, identifier)] = error

    def _record(self, operation: str, identifier: str) -> None:
        self.calls.append((operation, identifier))
        error = self.failures.get((operation, identifier))
        if error is not None:
            raise error

    def __enter__(self) -> "FakeStore":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        return None

    @override
    def list_identifiers(self) -> list[str]:
        self._record("list", "")
        return list(self.dashboards)

    @override
    def get(self, identifier: str) -> Dashboard:
        self._record("get", identifier)
        if identifier not in self.dashboards:
            raise NotFound(identifier)
        return self.dashboards[identifier]

    @override
    def create_or_update(self, content: bytes) -> DashboardWriteResult:
        identifier = slugify(dashboard_title(content))
        self._record("create_or_update", identifier)
        previous = self.dashboards.get(identifier)
        version = previous.version + 1 if previous else 1
        self.dashboards[identifier] = Dashboard.from_content(content, version)
        return DashboardWriteResult(status="success", version=version)

    @override
    def delete(self, identifier: str) -> None:
        self._record("delete", identifier)
        if identifier not in self.dashboards:
            raise NotFound(identifier)
        del self.dashboards[identifier]

    def writes(self) -> list[tuple[str, str]]:
        """Return the create_or_update and delete calls, in order."""
        return [call for call in self.calls if call[0] in ("create_or_update", "delete")]


class FakeWorkingTree(DashboardWorkingTree):
    """Working tree recording the commits and pushes asked of it."""

    def __init__(self, path: Path) -> None:
        """Initialize the working tree rooted at `path`."""
        super().__init__(path)
        self.sync_calls: list[bool] = []
        self.commits: list[tuple[str, list[str]]] = []
        self.pushes = 0

    @override
    def sync(self, *, allow_clone: bool) -> str | None:
        self.sync_calls.append(allow_clone)
        self.path.mkdir(parents=True, exist_ok=True)
        return None

    @override
    def commit(self, message: str, paths: Sequence[str]) -> str | None:
        self.commits.append((message, list(paths)))
        return f"rev{len(self.commits)}"

    @override
    def push(self) -> None:
        self.pushes += 1
