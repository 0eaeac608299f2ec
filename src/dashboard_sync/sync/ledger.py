"""Version ledger: the last remote version synchronised into the repository, per dashboard."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from dashboard_sync import LEDGER_FILENAME
from dashboard_sync.errors import NotReadable
from dashboard_sync.util import atomic_write


@dataclass(frozen=True)
class VersionDiff:
    """A dashboard whose remote version moved past the one recorded in the ledger."""

    identifier: str
    old_version: int
    """Version recorded in the ledger before the pull, 0 if the dashboard was never synchronised."""
    new_version: int
    """Version currently held by the remote store."""


def ledger_path(repo_path: str | Path) -> Path:
    """Return the path of the ledger file in the given repository."""
    return Path(repo_path) / LEDGER_FILENAME


def load_versions(repo_path: str | Path) -> dict[str, int]:
    """Read the version ledger at the root of the repository.

    Args:
        repo_path: Root of the repository's working tree.

    Returns:
        A mapping of dashboard identifiers to versions. Empty if the ledger doesn't exist yet.

    Raises:
        NotReadable: If the ledger exists but couldn't be read or doesn't hold a JSON object of integers.
    """
    path = ledger_path(repo_path)

    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        logger.debug(f"No version ledger at {path}, considering no dashboard as synchronised")
        return {}
    except OSError as e:
        raise NotReadable(f"Failed to read the version ledger at {path}: {e}") from e

    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise NotReadable(f"Version ledger at {path} is not valid JSON: {e}") from e

    if not isinstance(data, dict) or not all(
        isinstance(version, int) and not isinstance(version, bool) for version in data.values()
    ):
        raise NotReadable(f"Version ledger at {path} must map dashboard identifiers to integer versions")

    return data


def save_versions(versions: Mapping[str, int], repo_path: str | Path) -> Path:
    """Write the version ledger at the root of the repository.

    Returns:
        The path of the written ledger file.
    """
    path = ledger_path(repo_path)
    serialized = json.dumps(dict(versions), indent="\t", sort_keys=True) + "\n"
    atomic_write(path, serialized.encode("utf-8"))
    logger.debug(f"Wrote {len(versions)} versions to {path}")
    return path


def merge_versions(versions: Mapping[str, int], diffs: Iterable[VersionDiff]) -> dict[str, int]:
    """Return a copy of `versions` with every diff's new version applied."""
    merged = dict(versions)
    for diff in diffs:
        merged[diff.identifier] = diff.new_version
    return merged


def commit_message(diffs: Iterable[VersionDiff]) -> str:
    """Build the message of the commit recording the given version updates."""
    lines = ["Updated dashboards"]
    lines.extend(
        f"{diff.identifier}: {diff.old_version} => {diff.new_version}"
        for diff in sorted(diffs, key=lambda d: d.identifier)
    )
    return "\n".join(lines) + "\n"
