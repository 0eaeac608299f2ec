"""Git working tree holding the dashboards, driven through GitPython."""

from __future__ import annotations

import shlex
from collections.abc import Sequence
from pathlib import Path
from typing import override

from git import NULL_TREE, GitCommandError, InvalidGitRepositoryError, NoSuchPathError, PushInfo, Repo
from git.exc import BadName, BadObject
from git.objects import Commit
from loguru import logger

from dashboard_sync import DEFAULT_BOT_EMAIL, DEFAULT_BOT_NAME, DEFAULT_BRANCH, GitSettings
from dashboard_sync.errors import RepositoryError
from dashboard_sync.repository.base import DashboardWorkingTree

_BENIGN_PULL_ERRORS = (
    "couldn't find remote ref",
    "no such ref was fetched",
)
"""Pull failures meaning the remote is still empty."""

_BENIGN_PUSH_ERRORS = (
    "everything up-to-date",
    "src refspec",
    "non-fast-forward",
    "fetch first",
)
"""Push failures meaning there is nothing to push, or that the remote already advanced."""


def _matches(error: GitCommandError, known: tuple[str, ...]) -> bool:
    text = f"{error.stderr} {error.stdout}".lower()
    return any(fragment in text for fragment in known)


class GitRepository(DashboardWorkingTree):
    """Git clone of the dashboards repository.

    Wraps the handful of git operations the reconcilers need: clone or pull, commit with the bot
    identity, push, and inspecting history between two revisions.
    """

    def __init__(
        self,
        *,
        clone_path: str | Path,
        remote_url: str,
        branch: str = DEFAULT_BRANCH,
        author_name: str = DEFAULT_BOT_NAME,
        author_email: str = DEFAULT_BOT_EMAIL,
        private_key_path: str | None = None,
        remote_name: str = "origin",
    ) -> None:
        """Initialize the repository handle. Nothing touches the disk until `sync()` is called.

        Args:
            clone_path: Directory holding the working tree.
            remote_url: URL of the remote to clone from and push to.
            branch: Branch to pull from and push to.
            author_name: Name of the bot authoring automated commits.
            author_email: Email of the bot authoring automated commits.
            private_key_path: SSH private key to authenticate with, if any.
            remote_name: Name of the remote in the clone.
        """
        super().__init__(clone_path)
        self.remote_url = remote_url
        self.branch = branch
        self.author_name = author_name
        self.author_email = author_email
        self.private_key_path = private_key_path
        self.remote_name = remote_name

        self._repo: Repo | None = None

    @classmethod
    def from_settings(cls, settings: GitSettings) -> GitRepository:
        """Build a repository handle from the git section of the settings."""
        return cls(
            clone_path=settings.clone_path,
            remote_url=settings.remote_url,
            branch=settings.branch,
            author_name=settings.commits_author.name,
            author_email=settings.commits_author.email,
            private_key_path=settings.private_key,
        )

    @property
    def repo(self) -> Repo:
        """The underlying GitPython repository, opening it if needed.

        Raises:
            RepositoryError: If the clone path doesn't hold a git repository.
        """
        if self._repo is None:
            try:
                self._repo = Repo(self.path)
            except (InvalidGitRepositoryError, NoSuchPathError) as e:
                raise RepositoryError(f"{self.path} is not a git repository") from e
            self._repo.git.update_environment(**self._git_environment())
        return self._repo

    def _git_environment(self) -> dict[str, str]:
        """Environment variables every git command runs with."""
        env: dict[str, str] = {}
        if self.private_key_path:
            key = shlex.quote(str(Path(self.private_key_path).expanduser()))
            env["GIT_SSH_COMMAND"] = f"ssh -i {key} -o IdentitiesOnly=yes -o StrictHostKeyChecking=accept-new"
        return env

    def _bot_environment(self) -> dict[str, str]:
        return {
            "GIT_AUTHOR_NAME": self.author_name,
            "GIT_AUTHOR_EMAIL": self.author_email,
            "GIT_COMMITTER_NAME": self.author_name,
            "GIT_COMMITTER_EMAIL": self.author_email,
        }

    def close(self) -> None:
        """Release the resources held by GitPython."""
        if self._repo is not None:
            self._repo.close()
            self._repo = None

    @override
    def sync(self, *, allow_clone: bool) -> str | None:
        exists = self.path.exists()
        is_repo = (self.path / ".git").exists()

        if exists and not is_repo:
            raise RepositoryError(f"{self.path} already exists but is not a git repository")

        logger.info(f"Synchronising {self.path} with {self.remote_url} (branch: {self.branch}, pull: {exists})")

        if exists:
            self._pull()
        elif allow_clone:
            self._clone()
        else:
            raise RepositoryError(f"{self.path} has not been cloned yet and cloning isn't allowed here")

        return self.latest_revision()

    def _clone(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        try:
            self._repo = Repo.clone_from(
                url=self.remote_url,
                to_path=self.path,
                branch=self.branch,
                env=self._git_environment(),
            )
        except GitCommandError as e:
            if "not found in upstream" not in str(e.stderr):
                logger.error(f"Failed to clone {self.remote_url}: {e}")
                raise RepositoryError(f"Failed to clone {self.remote_url}: {e}") from e

            # The remote is empty, the branch will be born with the first commit.
            logger.warning(f"Branch {self.branch} doesn't exist on {self.remote_url} yet, cloning an empty repository")
            try:
                self._repo = Repo.clone_from(url=self.remote_url, to_path=self.path, env=self._git_environment())
                self._repo.git.symbolic_ref("HEAD", f"refs/heads/{self.branch}")
            except GitCommandError as clone_error:
                raise RepositoryError(f"Failed to clone {self.remote_url}: {clone_error}") from clone_error

        self._repo.git.update_environment(**self._git_environment())
        with self._repo.config_writer() as config:
            config.set_value("user", "name", self.author_name)
            config.set_value("user", "email", self.author_email)

        logger.info(f"Cloned {self.remote_url} into {self.path}")

    def _pull(self) -> None:
        try:
            # Merge commits created by the pull are automated, so they carry the bot identity.
            with self.repo.git.custom_environment(**self._bot_environment()):
                self.repo.git.pull("--no-rebase", "--no-edit", self.remote_name, self.branch)
        except GitCommandError as e:
            if _matches(e, _BENIGN_PULL_ERRORS):
                logger.warning(f"Remote {self.remote_name} has nothing to pull yet: {str(e.stderr).strip()}")
                return
            logger.error(f"Failed to pull {self.remote_name}/{self.branch} into {self.path}: {e}")
            raise RepositoryError(f"Failed to pull {self.remote_name}/{self.branch}: {e}") from e

    def latest_revision(self) -> str | None:
        """Return the revision HEAD points to, or None if the branch has no commit yet."""
        try:
            return self.repo.head.commit.hexsha
        except ValueError:
            return None

    @override
    def commit(self, message: str, paths: Sequence[str]) -> str | None:
        try:
            self.repo.git.add("--", *paths)

            if not self.repo.is_dirty(index=True, working_tree=False, untracked_files=False):
                logger.warning("No changes to commit")
                return None

            logger.debug(f"Committing {len(paths)} files with message:\n{message}")
            with self.repo.git.custom_environment(**self._bot_environment()):
                self.repo.git.commit("-m", message, "--no-gpg-sign")
        except GitCommandError as e:
            logger.error(f"Failed to commit in {self.path}: {e}")
            raise RepositoryError(f"Failed to commit in {self.path}: {e}") from e

        return self.latest_revision()

    @override
    def push(self) -> None:
        logger.info(f"Pushing {self.branch} to {self.remote_name}")

        try:
            results = self.repo.remote(self.remote_name).push(refspec=f"{self.branch}:{self.branch}")
        except GitCommandError as e:
            if _matches(e, _BENIGN_PUSH_ERRORS):
                logger.warning(f"Caught a push non-error: {str(e.stderr).strip()}")
                return
            logger.error(f"Failed to push {self.branch}: {e}")
            raise RepositoryError(f"Failed to push {self.branch}: {e}") from e
        except ValueError as e:
            raise RepositoryError(f"Failed to push {self.branch}: {e}") from e

        for result in results:
            if result.flags & PushInfo.UP_TO_DATE:
                logger.debug(f"{result.remote_ref_string} is already up to date")
            elif result.flags & PushInfo.REJECTED:
                logger.warning(
                    f"Push of {self.branch} rejected, the remote already advanced ({result.summary.strip()}). "
                    "Local commits will be pushed after the next pull."
                )
            elif result.flags & (PushInfo.REMOTE_REJECTED | PushInfo.REMOTE_FAILURE | PushInfo.ERROR):
                raise RepositoryError(f"Failed to push {self.branch}: {result.summary.strip()}")
            else:
                logger.debug(f"Pushed {result.remote_ref_string}: {result.summary.strip()}")

    def _commit(self, revision: str) -> Commit:
        try:
            return self.repo.commit(revision)
        except (BadName, BadObject, ValueError) as e:
            raise RepositoryError(f"Unknown revision {revision}") from e

    def files_at(self, revision: str) -> dict[str, bytes]:
        """Return the content of every file in the repository at the given revision.

        Raises:
            RepositoryError: If the revision doesn't exist.
        """
        commit = self._commit(revision)
        return {
            str(item.path): item.data_stream.read()
            for item in commit.tree.traverse()
            if item.type == "blob"
        }

    def changed_paths(
        self,
        from_revision: str | None,
        to_revision: str,
        *,
        exclude_author: str | None = None,
    ) -> tuple[list[str], list[str]]:
        """List the files changed between two revisions, ignoring commits from a given author.

        Commits are replayed oldest first, so a file touched several times ends up classified by
        its last change.

        Args:
            from_revision: Oldest revision, excluded from the range. None means from the root commit.
            to_revision: Most recent revision, included in the range.
            exclude_author: Email of an author whose commits are skipped entirely.

        Returns:
            A tuple of (added or modified paths, removed paths).

        Raises:
            RepositoryError: If a revision doesn't exist.
        """
        rev_range = f"{from_revision}..{to_revision}" if from_revision else to_revision

        try:
            commits = list(self.repo.iter_commits(rev_range, reverse=True))
        except GitCommandError as e:
            raise RepositoryError(f"Failed to read the history between {rev_range}: {e}") from e

        present: dict[str, bool] = {}
        for commit in commits:
            if exclude_author is not None and commit.author.email == exclude_author:
                logger.debug(f"Commit {commit.hexsha[:8]} was made by {exclude_author}, skipping")
                continue

            if commit.parents:
                diffs = commit.parents[0].diff(commit)
            else:
                diffs = commit.diff(NULL_TREE, R=True)

            for diff in diffs:
                if diff.change_type == "D" and diff.a_path:
                    present[diff.a_path] = False
                elif diff.change_type == "R":
                    if diff.a_path:
                        present[diff.a_path] = False
                    if diff.b_path:
                        present[diff.b_path] = True
                elif diff.b_path:
                    present[diff.b_path] = True

        modified = [path for path, exists in present.items() if exists]
        removed = [path for path, exists in present.items() if not exists]
        logger.debug(f"Between {rev_range}: {len(modified)} added or modified, {len(removed)} removed")
        return modified, removed
