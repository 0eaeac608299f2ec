from pathlib import Path

import pytest

from dashboard_sync import cli
from dashboard_sync.errors import RemoteUnavailable
from dashboard_sync.sync.ledger import load_versions
from tests.helpers import FakeStore, make_dashboard


@pytest.fixture(autouse=True)
def keep_test_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    """Leave the test logging handlers in place."""
    monkeypatch.setattr(cli, "configure_logger", lambda *args, **kwargs: None)


@pytest.fixture
def simple_sync_config(tmp_path: Path) -> Path:
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "grafana:\n"
        "  base_url: https://grafana.example.com\n"
        "  api_key: grafana-key\n"
        "simple_sync:\n"
        f"  sync_path: {tmp_path / 'dashboards'}\n"
    )
    return config_file


class TestParser:
    """Tests for the argument parser."""

    def test_pull(self) -> None:
        args = cli.build_parser().parse_args(["--config", "other.yaml", "pull", "--interval", "60"])

        assert args.config == "other.yaml"
        assert args.command == "pull"
        assert args.interval == 60
        assert not args.verbose

    def test_push_defaults(self) -> None:
        args = cli.build_parser().parse_args(["--verbose", "push"])

        assert args.config == "config.yaml"
        assert args.command == "push"
        assert args.delete_removed is False
        assert args.verbose

    def test_command_is_required(self) -> None:
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])


class TestMain:
    """Tests for the command line entry point."""

    def test_missing_configuration(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        assert cli.main(["--config", str(tmp_path / "missing.yaml"), "pull"]) == 1
        assert "Failed to load the configuration" in caplog.text

    def test_invalid_configuration(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("grafana:\n  base_url: https://grafana.example.com\n")

        assert cli.main(["--config", str(config_file), "pull"]) == 1

    def test_pull_once(
        self,
        simple_sync_config: Path,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        store = FakeStore([make_dashboard("Alpha", 3), make_dashboard("Beta", 1)])
        monkeypatch.setattr(cli, "build_store", lambda settings: store)

        assert cli.main(["--config", str(simple_sync_config), "pull"]) == 0

        sync_path = tmp_path / "dashboards"
        assert (sync_path / "alpha.json").exists()
        assert (sync_path / "beta.json").exists()
        assert load_versions(sync_path) == {"alpha": 3, "beta": 1}

    def test_pull_failure(
        self,
        simple_sync_config: Path,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        store = FakeStore()
        store.fail("list", "", RemoteUnavailable("Grafana is down"))
        monkeypatch.setattr(cli, "build_store", lambda settings: store)

        assert cli.main(["--config", str(simple_sync_config), "pull"]) == 1
        assert "Grafana is down" in caplog.text

    def test_push_without_git(self, simple_sync_config: Path, caplog: pytest.LogCaptureFixture) -> None:
        assert cli.main(["--config", str(simple_sync_config), "push"]) == 0
        assert "nothing to do" in caplog.text
