"""Working trees the dashboards are pulled into."""

from dashboard_sync.repository.base import DashboardWorkingTree
from dashboard_sync.repository.git_repository import GitRepository
from dashboard_sync.repository.plain_directory import PlainDirectory

__all__ = [
    "DashboardWorkingTree",
    "GitRepository",
    "PlainDirectory",
]
