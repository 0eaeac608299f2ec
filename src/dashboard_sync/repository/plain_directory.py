"""Working tree without version control, for pull-only setups."""

from __future__ import annotations

from collections.abc import Sequence
from typing import override

from loguru import logger

from dashboard_sync.errors import RepositoryError
from dashboard_sync.repository.base import DashboardWorkingTree


class PlainDirectory(DashboardWorkingTree):
    """Plain directory receiving dashboard files. Commits and pushes are no-ops."""

    @override
    def sync(self, *, allow_clone: bool) -> str | None:
        if self.path.exists() and not self.path.is_dir():
            raise RepositoryError(f"{self.path} exists but is not a directory")

        if not self.path.exists():
            if not allow_clone:
                raise RepositoryError(f"{self.path} does not exist")
            logger.info(f"Creating sync directory {self.path}")
            try:
                self.path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise RepositoryError(f"Failed to create sync directory {self.path}: {e}") from e

        return None

    @override
    def commit(self, message: str, paths: Sequence[str]) -> str | None:
        logger.debug(f"{self.path} isn't under version control, not committing {len(paths)} files")
        return None

    @override
    def push(self) -> None:
        logger.debug(f"{self.path} isn't under version control, nothing to push")
