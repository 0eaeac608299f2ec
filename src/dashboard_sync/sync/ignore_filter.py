"""Decide which dashboards are outside the reconciliation engine's authority."""

from __future__ import annotations

from pathlib import PurePosixPath

from dashboard_sync import LEDGER_FILENAME
from dashboard_sync.util import dashboard_slug, slugify


def is_ledger_path(path: str) -> bool:
    """Return True if the repository path points to the version ledger."""
    return PurePosixPath(path).name == LEDGER_FILENAME


class IgnoreFilter:
    """Excludes dashboards whose slug starts with a configured prefix from every sync action."""

    def __init__(self, prefix: str | None = None) -> None:
        """Initialize the filter.

        Args:
            prefix: Prefix of the slugs to ignore. It is slugified once here, so it is always
                compared lower-case. None or an empty prefix ignores nothing.
        """
        self.prefix = slugify(prefix) if prefix else ""

    def is_ignored(self, title_or_identifier: str) -> bool:
        """Return True if the dashboard with the given title or identifier must be left alone."""
        if not self.prefix:
            return False
        return slugify(title_or_identifier).startswith(self.prefix)

    def is_ignored_content(self, content: bytes, *, source: str = "<content>") -> bool:
        """Return True if the dashboard described by the JSON content must be left alone.

        Raises:
            ContentMalformed: If a prefix is configured and the content is not a JSON object.
        """
        if not self.prefix:
            return False
        return dashboard_slug(content, source=source).startswith(self.prefix)
