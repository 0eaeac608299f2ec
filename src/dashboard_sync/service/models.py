"""Request and response models for the webhook service."""

from pydantic import BaseModel, ConfigDict, Field


class ContainsStatus(BaseModel):
    """Response carrying a status string."""

    status: str


class ContainsMessage(BaseModel):
    """Response carrying a human-readable message."""

    message: str


class GitLabAuthor(BaseModel):
    """Author of a commit, as described in a GitLab push event."""

    model_config = ConfigDict(extra="ignore")

    name: str = ""
    email: str = ""


class GitLabCommit(BaseModel):
    """A commit carried by a GitLab push event, with the paths it touched."""

    model_config = ConfigDict(
        extra="ignore",
        use_attribute_docstrings=True,
    )

    id: str
    author: GitLabAuthor = Field(default_factory=GitLabAuthor)

    added: list[str] = Field(default_factory=list)
    """Paths added by the commit."""

    modified: list[str] = Field(default_factory=list)
    """Paths modified by the commit."""

    removed: list[str] = Field(default_factory=list)
    """Paths removed by the commit."""


class GitLabPushEvent(BaseModel):
    """The part of a GitLab push event payload the webhook needs."""

    model_config = ConfigDict(
        extra="ignore",
        use_attribute_docstrings=True,
    )

    ref: str
    """Full name of the pushed ref, e.g. refs/heads/master."""

    before: str = ""
    """Revision of the ref before the push. All zeros when the ref was just created."""

    after: str = ""
    """Revision of the ref after the push."""

    commits: list[GitLabCommit] = Field(default_factory=list)
    """Pushed commits, oldest first."""
