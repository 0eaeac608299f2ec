"""Reconciliation of dashboards between the remote store and the repository, in both directions."""

from dashboard_sync.sync.changeset import ChangeSet
from dashboard_sync.sync.ignore_filter import IgnoreFilter, is_ledger_path
from dashboard_sync.sync.ledger import VersionDiff, commit_message, load_versions, merge_versions, save_versions
from dashboard_sync.sync.poller import RepositoryPoller
from dashboard_sync.sync.puller import PullReconciler, PullReport
from dashboard_sync.sync.pusher import PushFailure, PushReconciler, PushReport

__all__ = [
    "ChangeSet",
    "IgnoreFilter",
    "PullReconciler",
    "PullReport",
    "PushFailure",
    "PushReconciler",
    "PushReport",
    "RepositoryPoller",
    "VersionDiff",
    "commit_message",
    "is_ledger_path",
    "load_versions",
    "merge_versions",
    "save_versions",
]
