import os
import sys
from collections.abc import Callable, Generator, Iterator
from pathlib import Path

# Settings read DASHBOARD_SYNC_* variables, so clear them before any test builds settings
for _var_name in [name for name in os.environ if name.startswith("DASHBOARD_SYNC_")]:
    del os.environ[_var_name]

import pytest
from git import Actor, Repo
from loguru import logger
from pytest import LogCaptureFixture

from dashboard_sync.repository.git_repository import GitRepository
from tests.helpers import HUMAN, FakeStore, FakeWorkingTree


@pytest.fixture
def caplog(caplog: LogCaptureFixture) -> Generator[LogCaptureFixture, None, None]:
    """Fixture to capture log messages during tests.

    See https://loguru.readthedocs.io/en/stable/resources/migration.html#migration-caplog for more information.
    """
    handler_id = logger.add(caplog.handler, format="{message}")
    yield caplog
    logger.remove(handler_id)


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Set up logging for tests."""
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG",
        format="{time:YYYY-MM-DD HH:mm:ss} | {name}:{function}:{line} | {level} | {message}",
    )


@pytest.fixture
def fake_store() -> FakeStore:
    """Return an empty in-memory dashboard store."""
    return FakeStore()


@pytest.fixture
def fake_working_tree(tmp_path: Path) -> FakeWorkingTree:
    """Return a working tree rooted in a temporary directory."""
    return FakeWorkingTree(tmp_path / "dashboards")


@pytest.fixture
def bare_remote(tmp_path: Path) -> Path:
    """Create an empty bare repository acting as the git remote."""
    remote_path = tmp_path / "remote.git"
    remote = Repo.init(remote_path, bare=True)
    remote.git.symbolic_ref("HEAD", "refs/heads/master")
    remote.close()
    return remote_path


@pytest.fixture
def human_clone(tmp_path: Path, bare_remote: Path) -> Iterator[Repo]:
    """Create a second working copy of the remote, used to make commits the way a person would."""
    repo = Repo.init(tmp_path / "human")
    repo.git.symbolic_ref("HEAD", "refs/heads/master")
    repo.create_remote("origin", str(bare_remote))
    yield repo
    repo.close()


@pytest.fixture
def commit_and_push() -> Callable[..., str]:
    """Return a function committing file changes in a working copy and pushing them to its remote.

    Files mapped to None are removed. The working copy is brought up to date first.
    """

    def _commit_and_push(
        repo: Repo,
        files: dict[str, bytes | None],
        *,
        author: Actor = HUMAN,
        message: str = "Edit dashboards",
    ) -> str:
        if repo.git.ls_remote("--heads", "origin"):
            repo.git.pull("--ff-only", "origin", "master")

        working_dir = Path(str(repo.working_tree_dir))
        to_add: list[str] = []
        to_remove: list[str] = []
        for name, content in files.items():
            if content is None:
                to_remove.append(name)
            else:
                (working_dir / name).write_bytes(content)
                to_add.append(name)

        if to_add:
            repo.index.add(to_add)
        if to_remove:
            repo.index.remove(to_remove, working_tree=True)

        commit = repo.index.commit(message, author=author, committer=author)
        repo.remote("origin").push("master:master")
        return commit.hexsha

    return _commit_and_push


@pytest.fixture
def git_repository(tmp_path: Path, bare_remote: Path) -> Iterator[GitRepository]:
    """Return a repository handle on a clone of the bare remote, with the default bot identity."""
    repository = GitRepository(clone_path=tmp_path / "clone", remote_url=str(bare_remote))
    yield repository
    repository.close()
