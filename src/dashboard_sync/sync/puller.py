"""Pull reconciler: mirror the remote dashboard store into the working tree."""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from dashboard_sync import LEDGER_FILENAME
from dashboard_sync.backends.base import DashboardStore
from dashboard_sync.records import Dashboard
from dashboard_sync.repository.base import DashboardWorkingTree
from dashboard_sync.sync.ignore_filter import IgnoreFilter
from dashboard_sync.sync.ledger import (
    VersionDiff,
    commit_message,
    load_versions,
    merge_versions,
    save_versions,
)
from dashboard_sync.util import atomic_write, indent_json


@dataclass
class PullReport:
    """What a pull pass changed in the working tree."""

    diffs: list[VersionDiff] = field(default_factory=list)
    """Dashboards whose file was (re)written, with their old and new versions."""

    ignored: list[str] = field(default_factory=list)
    """Identifiers of the dashboards skipped because of the ignore prefix."""

    revision: str | None = None
    """Revision of the commit recording the changes, None if nothing was committed."""

    def has_changes(self) -> bool:
        """Return True if at least one dashboard file was written."""
        return bool(self.diffs)

    def summary(self) -> str:
        """Return a human-readable summary of the pass."""
        if not self.has_changes():
            return "No dashboard changed since the last pull"

        lines = [f"Pulled {len(self.diffs)} dashboards:"]
        lines.extend(
            f"  {diff.identifier}: {diff.old_version} => {diff.new_version}"
            for diff in sorted(self.diffs, key=lambda d: d.identifier)
        )
        if self.ignored:
            lines.append(f"  Ignored: {len(self.ignored)} dashboards")
        return "\n".join(lines)


class PullReconciler:
    """One-shot synchronisation of the remote dashboard store into the working tree.

    Dashboards are only written when their remote version is strictly newer than the one recorded in
    the version ledger, so running a pass twice in a row writes nothing the second time and a
    dashboard is never downgraded.
    """

    def __init__(
        self,
        *,
        store: DashboardStore,
        working_tree: DashboardWorkingTree,
        ignore_filter: IgnoreFilter | None = None,
    ) -> None:
        """Initialize the pull reconciler.

        Args:
            store: The remote dashboard store to pull from.
            working_tree: Where the dashboard files and the version ledger live.
            ignore_filter: Decides which dashboards are left alone. Ignores nothing if None.
        """
        self.store = store
        self.working_tree = working_tree
        self.ignore_filter = ignore_filter or IgnoreFilter()

    def run(self) -> PullReport:
        """Run a pull pass.

        Every dashboard is fetched before anything is written, and any failure aborts the pass
        before the commit, so the ledger and the dashboard files always stay consistent.

        Returns:
            A report of the dashboards written during the pass.

        Raises:
            RemoteError: If listing or fetching a dashboard failed.
            RepositoryError: If synchronising, committing or pushing the working tree failed.
            NotReadable: If the version ledger couldn't be read.
        """
        self.working_tree.sync(allow_clone=True)
        repo_path = self.working_tree.path
        versions = load_versions(repo_path)

        identifiers = self.store.list_identifiers()
        logger.info(f"Pulling {len(identifiers)} dashboards into {repo_path}")

        dashboards = [self.store.get(identifier) for identifier in identifiers]

        report = PullReport()
        seen: dict[str, Dashboard] = {}
        written: list[Dashboard] = []

        for dashboard in dashboards:
            identifier = dashboard.identifier
            if not identifier:
                logger.warning(f"Dashboard titled {dashboard.title!r} has no usable slug, skipping")
                continue

            if self.ignore_filter.is_ignored(dashboard.title):
                logger.debug(f"Dashboard {identifier} matches the ignore prefix, skipping")
                report.ignored.append(identifier)
                continue

            if identifier in seen:
                logger.warning(
                    f"Dashboards {seen[identifier].title!r} and {dashboard.title!r} share the slug "
                    f"{identifier}, keeping the first one"
                )
                continue
            seen[identifier] = dashboard

            known_version = versions.get(identifier, 0)
            if dashboard.version <= known_version:
                logger.debug(f"Dashboard {identifier} is up to date (version {known_version})")
                continue

            atomic_write(repo_path / dashboard.filename, indent_json(dashboard.content))
            written.append(dashboard)
            report.diffs.append(
                VersionDiff(identifier=identifier, old_version=known_version, new_version=dashboard.version)
            )
            logger.info(f"Dashboard {identifier} updated: {known_version} => {dashboard.version}")

        if report.has_changes():
            save_versions(merge_versions(versions, report.diffs), repo_path)
            paths = [dashboard.filename for dashboard in written] + [LEDGER_FILENAME]
            report.revision = self.working_tree.commit(commit_message(report.diffs), paths)

        # Pushing even without a new commit flushes commits a previous failed push left behind.
        self.working_tree.push()

        logger.info(report.summary())
        return report
