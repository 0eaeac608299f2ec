"""Keep Grafana dashboards mirrored in a git repository and propagate edits in both directions."""

from __future__ import annotations

from enum import auto
from pathlib import Path
from typing import Any

import yaml
from loguru import logger
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from strenum import StrEnum

from dashboard_sync.util import slugify

LEDGER_FILENAME = "versions.json"
"""Name of the version ledger file at the root of the repository."""

DEFAULT_BOT_NAME = "Grafana Dashboard Manager"
DEFAULT_BOT_EMAIL = "grafana-dashboard-manager@localhost"
DEFAULT_BRANCH = "master"


class PusherMode(StrEnum):
    """How the pusher learns about changes made to the repository."""

    webhook = auto()
    """A GitLab push webhook notifies the pusher."""
    git_pull = "git-pull"
    """The pusher polls the remote repository at a fixed interval."""


class GrafanaSettings(BaseModel):
    """Settings required to talk to the Grafana HTTP API."""

    model_config = SettingsConfigDict(
        use_attribute_docstrings=True,
    )

    base_url: str
    """Base URL of the Grafana instance, e.g. https://grafana.example.com."""

    api_key: str
    """API key sent as a bearer token with every request."""

    ignore_prefix: str | None = None
    """Dashboards whose slug starts with this prefix are never synchronised."""

    timeout_seconds: float = 30.0
    """Timeout for every HTTP request to Grafana."""

    @field_validator("ignore_prefix")
    @classmethod
    def normalize_ignore_prefix(cls, value: str | None) -> str | None:
        """Compare the prefix against slugs, so make it a slug itself."""
        if value is None:
            return None
        return slugify(value) or None


class CommitsAuthorSettings(BaseModel):
    """Identity used for every commit made by the puller."""

    model_config = SettingsConfigDict(
        use_attribute_docstrings=True,
    )

    name: str = DEFAULT_BOT_NAME
    """Author name of automated commits."""

    email: str = DEFAULT_BOT_EMAIL
    """Author email of automated commits. Commits authored with this email are never pushed to Grafana."""


class GitSettings(BaseModel):
    """Settings for the git repository holding the dashboards."""

    model_config = SettingsConfigDict(
        use_attribute_docstrings=True,
    )

    url: str
    """Repository URL. SSH URLs without a user part get `user@` prepended."""

    user: str = "git"
    """SSH user for the remote."""

    private_key: str | None = None
    """Path to the SSH private key used to talk to the remote. If None, git's own configuration is used."""

    clone_path: str = "/tmp/grafana-dashboards"
    """Directory holding the working tree."""

    branch: str = DEFAULT_BRANCH
    """Branch to pull from and push to."""

    commits_author: CommitsAuthorSettings = Field(default_factory=CommitsAuthorSettings)
    """Identity of the bot committing pulled dashboards."""

    @property
    def remote_url(self) -> str:
        """Return the URL git should use, including the SSH user when needed."""
        if "://" in self.url or "@" in self.url or not self.user:
            return self.url
        return f"{self.user}@{self.url}"


class SimpleSyncSettings(BaseModel):
    """Settings for pulling dashboards into a plain directory, without git."""

    model_config = SettingsConfigDict(
        use_attribute_docstrings=True,
    )

    sync_path: str
    """Directory receiving the dashboard files and the version ledger."""


class PusherConfig(BaseModel):
    """Mode-specific settings of the pusher."""

    model_config = SettingsConfigDict(
        use_attribute_docstrings=True,
    )

    interface: str | None = None
    """Interface the webhook listens on."""

    port: int | None = None
    """Port the webhook listens on."""

    path: str | None = None
    """HTTP path of the webhook, e.g. /gitlab-webhook."""

    secret: str | None = None
    """Secret token GitLab sends in the X-Gitlab-Token header."""

    interval: int | None = None
    """Seconds between two polls of the remote repository."""


class PusherSettings(BaseModel):
    """Settings of the repository to Grafana pusher."""

    model_config = SettingsConfigDict(
        use_attribute_docstrings=True,
    )

    sync_mode: PusherMode
    """Either `webhook` or `git-pull`."""

    config: PusherConfig = Field(default_factory=PusherConfig)
    """Settings matching the sync mode."""

    @model_validator(mode="after")
    def validate_config_matches_mode(self) -> PusherSettings:
        """Make sure every setting the sync mode needs is present."""
        config = self.config
        if self.sync_mode == PusherMode.webhook:
            missing = [
                name for name in ("interface", "port", "path", "secret") if not getattr(config, name)
            ]
            if missing:
                raise ValueError(f"The webhook sync mode requires pusher.config settings: {', '.join(missing)}")
        elif not config.interval or config.interval <= 0:
            raise ValueError("The git-pull sync mode requires a positive pusher.config.interval")
        return self


class DashboardSyncSettings(BaseSettings):
    """Settings for the whole dashboard synchronisation service."""

    model_config = SettingsConfigDict(
        env_prefix="DASHBOARD_SYNC_",
        env_nested_delimiter="__",
        use_attribute_docstrings=True,
    )

    grafana: GrafanaSettings
    """How to reach Grafana."""

    git: GitSettings | None = None
    """Git repository settings. Takes precedence over simple_sync when both are set."""

    simple_sync: SimpleSyncSettings | None = None
    """Plain directory settings, used when no git repository is configured."""

    pusher: PusherSettings | None = None
    """Pusher settings. The pusher cannot start without them."""

    @model_validator(mode="after")
    def validate_sync_target(self) -> DashboardSyncSettings:
        """Require somewhere to synchronise dashboards to."""
        if self.git is None and self.simple_sync is None:
            raise ValueError("At least one of the simple_sync or the git settings must be set")

        if self.git is not None and self.simple_sync is not None:
            logger.warning("Both git and simple_sync settings are set, simple_sync will be ignored.")

        if self.pusher is not None and self.git is None:
            logger.warning("Pusher settings are set without git settings, the pusher will not be able to start.")

        return self

    @property
    def bot_email(self) -> str:
        """Return the email automated commits are authored with."""
        if self.git is None:
            return DEFAULT_BOT_EMAIL
        return self.git.commits_author.email


def load_settings(config_file: str | Path) -> DashboardSyncSettings:
    """Load the settings from a YAML file, completed by `DASHBOARD_SYNC_*` environment variables.

    Values found in the file take precedence over the environment.

    Args:
        config_file: Path to the YAML configuration file.

    Returns:
        The validated settings.

    Raises:
        OSError: If the file cannot be read.
        yaml.YAMLError: If the file is not valid YAML.
        pydantic.ValidationError: If the settings are invalid.
    """
    config_path = Path(config_file)
    logger.info(f"Loading configuration from {config_path}")

    with open(config_path, encoding="utf-8") as f:
        raw: Any = yaml.safe_load(f)

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping at its top level")

    return DashboardSyncSettings(**raw)


__all__ = [
    "DEFAULT_BOT_EMAIL",
    "DEFAULT_BOT_NAME",
    "DEFAULT_BRANCH",
    "LEDGER_FILENAME",
    "CommitsAuthorSettings",
    "DashboardSyncSettings",
    "GitSettings",
    "GrafanaSettings",
    "PusherConfig",
    "PusherMode",
    "PusherSettings",
    "SimpleSyncSettings",
    "load_settings",
]
