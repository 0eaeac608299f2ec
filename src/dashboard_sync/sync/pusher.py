"""Push reconciler: propagate repository changes to the remote dashboard store."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath

from loguru import logger

from dashboard_sync.backends.base import DashboardStore
from dashboard_sync.errors import ContentMalformed, DashboardSyncError, NotFound
from dashboard_sync.sync.changeset import ChangeSet
from dashboard_sync.sync.ignore_filter import IgnoreFilter, is_ledger_path
from dashboard_sync.sync.puller import PullReconciler, PullReport
from dashboard_sync.util import dashboard_slug


@dataclass(frozen=True)
class PushFailure:
    """A single change set entry the remote store could not absorb."""

    path: str
    identifier: str | None
    """Slug of the dashboard, None if it couldn't be derived from the content."""
    error: DashboardSyncError


@dataclass
class PushReport:
    """What a push pass did to the remote store."""

    pushed: list[str] = field(default_factory=list)
    """Identifiers of the dashboards created or updated."""

    deleted: list[str] = field(default_factory=list)
    """Identifiers of the dashboards deleted."""

    ignored: list[str] = field(default_factory=list)
    """Paths skipped because of the ignore prefix."""

    kept: list[str] = field(default_factory=list)
    """Removed paths left alone because deletion propagation is disabled."""

    failures: list[PushFailure] = field(default_factory=list)

    pull_report: PullReport | None = None
    """Report of the pull pass that followed the push."""

    def has_failures(self) -> bool:
        """Return True if at least one entry failed."""
        return bool(self.failures)

    def summary(self) -> str:
        """Return a human-readable summary of the pass."""
        lines = [f"Pushed {len(self.pushed)} dashboards, deleted {len(self.deleted)}"]
        if self.ignored:
            lines.append(f"  Ignored: {len(self.ignored)} files")
        if self.kept:
            lines.append(f"  Not deleted (deletion disabled): {len(self.kept)} files")
        if self.failures:
            lines.append(f"  Failed: {len(self.failures)} files")
            lines.extend(f"    ! {failure.path}: {failure.error}" for failure in self.failures)
        return "\n".join(lines)


def _identifier(path: str, content: bytes) -> str:
    """Return the dashboard slug from the content, falling back to the filename stem for untitled content.

    Raises:
        ContentMalformed: If the content is not a JSON object.
    """
    return dashboard_slug(content, source=path) or PurePosixPath(path).stem


class PushReconciler:
    """Applies a change set to the remote store, then pulls back the versions the store assigned.

    Entries are independent: the failure of one is recorded in the report and the others are still
    attempted. The trailing pull pass runs exactly once per push pass, whatever happened to the entries.
    """

    def __init__(
        self,
        *,
        store: DashboardStore,
        puller: PullReconciler,
        ignore_filter: IgnoreFilter | None = None,
        delete_removed: bool = False,
    ) -> None:
        """Initialize the push reconciler.

        Args:
            store: The remote dashboard store to push to.
            puller: Pull reconciler run after every push pass.
            ignore_filter: Decides which dashboards are left alone. Ignores nothing if None.
            delete_removed: Whether files removed from the repository are deleted from the remote store.
        """
        self.store = store
        self.puller = puller
        self.ignore_filter = ignore_filter or IgnoreFilter()
        self.delete_removed = delete_removed

    @staticmethod
    def _is_dashboard_path(path: str) -> bool:
        if is_ledger_path(path):
            return False
        if PurePosixPath(path).suffix != ".json":
            logger.debug(f"{path} is not a dashboard file, skipping")
            return False
        return True

    def run(self, change_set: ChangeSet) -> PushReport:
        """Run a push pass.

        Args:
            change_set: The repository changes to propagate, with bot-authored commits already excluded.

        Returns:
            A report of what was pushed, deleted, skipped and what failed, including the trailing pull.

        Raises:
            DashboardSyncError: If the trailing pull pass failed. Per-entry errors are never raised.
        """
        report = PushReport()
        logger.info(
            f"Pushing {change_set.total_changes()} changed paths ({len(change_set.added)} added, "
            f"{len(change_set.modified)} modified, {len(change_set.removed)} removed)"
        )

        for path in [*change_set.added, *change_set.modified]:
            if self._is_dashboard_path(path):
                self._push_entry(path, change_set.contents.get(path), report)

        for path in change_set.removed:
            if self._is_dashboard_path(path):
                self._delete_entry(path, change_set.contents.get(path), report)

        if report.has_failures():
            logger.warning(report.summary())
        else:
            logger.info(report.summary())

        report.pull_report = self.puller.run()
        return report

    @staticmethod
    def _require_content(path: str, content: bytes | None) -> bytes:
        if content is None:
            raise ContentMalformed(path, "the change set holds no content for this path")
        return content

    def _push_entry(self, path: str, content: bytes | None, report: PushReport) -> None:
        identifier: str | None = None
        try:
            content = self._require_content(path, content)
            identifier = _identifier(path, content)
            if self.ignore_filter.is_ignored(identifier):
                logger.debug(f"Dashboard {identifier} matches the ignore prefix, not pushing {path}")
                report.ignored.append(path)
                return

            result = self.store.create_or_update(content)
        except DashboardSyncError as e:
            logger.error(f"Failed to push {path}: {e}")
            report.failures.append(PushFailure(path=path, identifier=identifier, error=e))
            return

        logger.info(f"Pushed dashboard {identifier} from {path} (version {result.version})")
        report.pushed.append(identifier)

    def _delete_entry(self, path: str, content: bytes | None, report: PushReport) -> None:
        if not self.delete_removed:
            logger.info(f"{path} was removed but deletion is disabled, leaving the dashboard in place")
            report.kept.append(path)
            return

        identifier: str | None = None
        try:
            content = self._require_content(path, content)
            identifier = _identifier(path, content)
            if self.ignore_filter.is_ignored(identifier):
                logger.debug(f"Dashboard {identifier} matches the ignore prefix, not deleting it")
                report.ignored.append(path)
                return

            self.store.delete(identifier)
        except NotFound:
            logger.warning(f"Dashboard {identifier} removed in {path} was already gone from the remote store")
            return
        except DashboardSyncError as e:
            logger.error(f"Failed to delete the dashboard removed in {path}: {e}")
            report.failures.append(PushFailure(path=path, identifier=identifier, error=e))
            return

        logger.info(f"Deleted dashboard {identifier} removed in {path}")
        report.deleted.append(identifier)
