import threading
from collections.abc import Callable, Iterator
from typing import Any, cast

import pytest
from fastapi.testclient import TestClient
from git import Repo

from dashboard_sync import DEFAULT_BOT_EMAIL
from dashboard_sync.repository.git_repository import GitRepository
from dashboard_sync.service.app import create_app
from dashboard_sync.service.models import GitLabPushEvent
from dashboard_sync.service.webhook import WebhookHandler
from dashboard_sync.sync.changeset import ChangeSet
from dashboard_sync.sync.puller import PullReconciler
from dashboard_sync.sync.pusher import PushReconciler, PushReport
from tests.helpers import BOT, HUMAN, FakeStore, dashboard_json

SECRET = "s3cr3t"
HOOK_PATH = "/gitlab-webhook"


class RecordingHandler:
    """Stands in for the webhook handler, recording the events it is given."""

    def __init__(self) -> None:
        self.events: list[GitLabPushEvent] = []

    def process_event(self, event: GitLabPushEvent) -> None:
        self.events.append(event)


def push_payload(ref: str = "refs/heads/master", **extra: Any) -> dict[str, Any]:  # noqa: ANN401
    return {
        "object_kind": "push",
        "ref": ref,
        "before": "a" * 40,
        "after": "b" * 40,
        "commits": [
            {
                "id": "c" * 40,
                "message": "Edit alpha",
                "author": {"name": HUMAN.name, "email": HUMAN.email},
                "added": [],
                "modified": ["alpha.json"],
                "removed": [],
            }
        ],
        **extra,
    }


@pytest.fixture
def recording_handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def webhook_client(recording_handler: RecordingHandler) -> Iterator[TestClient]:
    app = create_app(cast(WebhookHandler, recording_handler), path=HOOK_PATH, secret=SECRET)
    with TestClient(app) as client:
        yield client


class TestWebhookRoute:
    """Tests for the HTTP side of the webhook."""

    def test_heartbeat(self, webhook_client: TestClient) -> None:
        response = webhook_client.get("/heartbeat")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_push_event_is_queued(self, webhook_client: TestClient, recording_handler: RecordingHandler) -> None:
        response = webhook_client.post(
            HOOK_PATH,
            json=push_payload(),
            headers={"X-Gitlab-Token": SECRET, "X-Gitlab-Event": "Push Hook"},
        )

        assert response.status_code == 202
        assert len(recording_handler.events) == 1
        event = recording_handler.events[0]
        assert event.ref == "refs/heads/master"
        assert event.commits[0].modified == ["alpha.json"]
        assert event.commits[0].author.email == HUMAN.email

    @pytest.mark.parametrize("headers", [{}, {"X-Gitlab-Token": "wrong"}])
    def test_bad_token_is_rejected(
        self,
        webhook_client: TestClient,
        recording_handler: RecordingHandler,
        headers: dict[str, str],
    ) -> None:
        response = webhook_client.post(
            HOOK_PATH,
            json=push_payload(),
            headers={"X-Gitlab-Event": "Push Hook", **headers},
        )

        assert response.status_code == 401
        assert recording_handler.events == []

    def test_other_events_are_ignored(self, webhook_client: TestClient, recording_handler: RecordingHandler) -> None:
        response = webhook_client.post(
            HOOK_PATH,
            json={"object_kind": "merge_request"},
            headers={"X-Gitlab-Token": SECRET, "X-Gitlab-Event": "Merge Request Hook"},
        )

        assert response.status_code == 202
        assert recording_handler.events == []

    def test_other_branches_are_ignored(self, webhook_client: TestClient, recording_handler: RecordingHandler) -> None:
        response = webhook_client.post(
            HOOK_PATH,
            json=push_payload(ref="refs/heads/feature"),
            headers={"X-Gitlab-Token": SECRET, "X-Gitlab-Event": "Push Hook"},
        )

        assert response.status_code == 202
        assert "refs/heads/feature" in response.json()["message"]
        assert recording_handler.events == []

    def test_invalid_payload(self, webhook_client: TestClient, recording_handler: RecordingHandler) -> None:
        response = webhook_client.post(
            HOOK_PATH,
            json={"commits": "not a list"},
            headers={"X-Gitlab-Token": SECRET, "X-Gitlab-Event": "Push Hook"},
        )

        assert response.status_code == 400
        assert recording_handler.events == []


class TestWebhookHandler:
    """Tests for turning push events into push passes, against real repositories."""

    @pytest.fixture
    def handler(self, git_repository: GitRepository, fake_store: FakeStore) -> WebhookHandler:
        return WebhookHandler(
            repository=git_repository,
            pusher=PushReconciler(
                store=fake_store,
                puller=PullReconciler(store=fake_store, working_tree=git_repository),
                delete_removed=True,
            ),
            bot_email=DEFAULT_BOT_EMAIL,
        )

    def test_handle_push(
        self,
        handler: WebhookHandler,
        git_repository: GitRepository,
        human_clone: Repo,
        commit_and_push: Callable[..., str],
        fake_store: FakeStore,
    ) -> None:
        before = commit_and_push(human_clone, {"gamma.json": dashboard_json("Gamma")})
        fake_store.create_or_update(dashboard_json("Gamma"))
        git_repository.sync(allow_clone=True)
        after = commit_and_push(human_clone, {"alpha.json": dashboard_json("Alpha"), "gamma.json": None})

        event = GitLabPushEvent.model_validate(
            {
                "ref": "refs/heads/master",
                "before": before,
                "after": after,
                "commits": [
                    {
                        "id": after,
                        "author": {"name": HUMAN.name, "email": HUMAN.email},
                        "added": ["alpha.json"],
                        "removed": ["gamma.json"],
                    },
                    {
                        "id": "f" * 40,
                        "author": {"name": BOT.name, "email": BOT.email},
                        "modified": ["beta.json"],
                    },
                ],
            }
        )

        report = handler.handle_push(event)

        assert report is not None
        assert report.pushed == ["alpha"]
        assert report.deleted == ["gamma"]
        assert fake_store.writes()[-2:] == [("create_or_update", "alpha"), ("delete", "gamma")]
        assert report.pull_report is not None
        assert [diff.identifier for diff in report.pull_report.diffs] == ["alpha"]

    def test_bot_only_push_is_skipped(
        self,
        handler: WebhookHandler,
        git_repository: GitRepository,
        human_clone: Repo,
        commit_and_push: Callable[..., str],
        fake_store: FakeStore,
    ) -> None:
        after = commit_and_push(human_clone, {"alpha.json": dashboard_json("Alpha")}, author=BOT)
        git_repository.sync(allow_clone=True)

        event = GitLabPushEvent.model_validate(
            {
                "ref": "refs/heads/master",
                "after": after,
                "commits": [{"id": after, "author": {"email": BOT.email}, "added": ["alpha.json"]}],
            }
        )

        assert handler.handle_push(event) is None
        assert fake_store.calls == []

    def test_process_event_logs_failures(
        self,
        handler: WebhookHandler,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """The repository was never cloned, so the event fails, without raising into the server."""
        handler.process_event(GitLabPushEvent(ref="refs/heads/master"))

        assert "Failed to handle the push event" in caplog.text


class StaticRepository:
    """Repository already at a fixed revision."""

    def sync(self, *, allow_clone: bool) -> str:
        return "1" * 40

    def files_at(self, revision: str) -> dict[str, bytes]:
        return {"alpha.json": dashboard_json("Alpha")}


class BlockingPusher:
    """Push reconciler whose passes wait until they are released."""

    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()
        self.calls: list[str] = []

    def run(self, change_set: ChangeSet) -> PushReport:
        self.calls.append("start")
        self.entered.set()
        self.release.wait(timeout=5)
        self.calls.append("end")
        return PushReport()


def test_push_events_are_handled_one_at_a_time() -> None:
    pusher = BlockingPusher()
    handler = WebhookHandler(
        repository=cast(GitRepository, StaticRepository()),
        pusher=cast(PushReconciler, pusher),
        bot_email=DEFAULT_BOT_EMAIL,
    )
    event = GitLabPushEvent.model_validate(
        {
            "ref": "refs/heads/master",
            "commits": [{"id": "c" * 40, "author": {"email": HUMAN.email}, "modified": ["alpha.json"]}],
        }
    )

    first = threading.Thread(target=handler.handle_push, args=(event,))
    second = threading.Thread(target=handler.handle_push, args=(event,))
    first.start()
    assert pusher.entered.wait(timeout=5)

    second.start()
    second.join(timeout=0.2)
    assert second.is_alive()
    assert pusher.calls == ["start"]

    pusher.release.set()
    first.join(timeout=5)
    second.join(timeout=5)

    assert pusher.calls == ["start", "end", "start", "end"]
