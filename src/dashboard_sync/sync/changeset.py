"""The set of repository changes a push pass propagates to the remote store."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from loguru import logger


@dataclass
class ChangeSet:
    """Added, modified and removed repository paths, with the content needed to push each of them."""

    added: list[str] = field(default_factory=list)
    """Paths created since the previous state."""

    modified: list[str] = field(default_factory=list)
    """Paths whose content changed since the previous state."""

    removed: list[str] = field(default_factory=list)
    """Paths deleted since the previous state."""

    contents: dict[str, bytes] = field(default_factory=dict)
    """Content of every path above. Removed paths map to their content before the deletion."""

    def is_empty(self) -> bool:
        """Return True if there is nothing to push."""
        return not (self.added or self.modified or self.removed)

    def total_changes(self) -> int:
        """Return the total number of paths (added + modified + removed)."""
        return len(self.added) + len(self.modified) + len(self.removed)

    @classmethod
    def from_paths(
        cls,
        *,
        added: Iterable[str] = (),
        modified: Iterable[str] = (),
        removed: Iterable[str] = (),
        current_contents: Mapping[str, bytes],
        previous_contents: Mapping[str, bytes] | None = None,
    ) -> ChangeSet:
        """Build a change set from path lists, taking each path's content from the right state.

        The latest state wins: a path listed both as changed and as removed is classified by whether
        it still exists in `current_contents`, and a changed path that no longer exists is treated as
        removed. Paths whose content cannot be found in either state are dropped.

        Args:
            added: Paths reported as added.
            modified: Paths reported as modified.
            removed: Paths reported as removed.
            current_contents: Repository files at the latest revision.
            previous_contents: Repository files before the changes, needed to push deletions.

        Returns:
            The resolved change set.
        """
        previous_contents = previous_contents or {}
        change_set = cls()

        added_paths = dict.fromkeys(added)
        changed_paths = dict.fromkeys([*added_paths, *modified])
        removed_paths = dict.fromkeys(removed)

        for path in changed_paths:
            if path in current_contents:
                target = change_set.added if path in added_paths else change_set.modified
                target.append(path)
                change_set.contents[path] = current_contents[path]
            else:
                removed_paths.setdefault(path)

        for path in removed_paths:
            if path in current_contents:
                if path not in changed_paths:
                    # Removed then re-created: it still exists at the latest revision.
                    change_set.modified.append(path)
                    change_set.contents[path] = current_contents[path]
                continue

            if path not in previous_contents:
                logger.warning(f"No content known for removed path {path}, it cannot be pushed")
                continue

            change_set.removed.append(path)
            change_set.contents[path] = previous_contents[path]

        logger.debug(
            f"Change set: {len(change_set.added)} added, {len(change_set.modified)} modified, "
            f"{len(change_set.removed)} removed"
        )
        return change_set
