"""Remote dashboard stores the reconcilers can talk to."""

from dashboard_sync.backends.base import DashboardStore
from dashboard_sync.backends.grafana_backend import GrafanaBackend

__all__ = [
    "DashboardStore",
    "GrafanaBackend",
]
