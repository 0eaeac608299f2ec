"""Records exchanged between the remote dashboard store and the reconcilers."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from dashboard_sync.util import dashboard_title, slugify


class Dashboard(BaseModel):
    """A versioned dashboard, as fetched from the remote store."""

    model_config = ConfigDict(
        frozen=True,
        use_attribute_docstrings=True,
    )

    title: str
    """Human-readable name, only used for ignore-prefix matching and logging."""

    version: int
    """Version assigned by the remote store, incremented on every successful write."""

    content: bytes
    """The dashboard's JSON description. Round-tripped, never interpreted beyond its title."""

    @property
    def identifier(self) -> str:
        """Return the slug of the title, used as the repository filename and the remote key."""
        return slugify(self.title)

    @property
    def filename(self) -> str:
        """Return the name of the repository file holding this dashboard."""
        return f"{self.identifier}.json"

    @classmethod
    def from_content(cls, content: bytes, version: int) -> Dashboard:
        """Build a dashboard from its JSON description, extracting the title from it."""
        return cls(title=dashboard_title(content), version=version, content=content)


class DashboardWriteResult(BaseModel):
    """Outcome of a create-or-update call against the remote store."""

    model_config = ConfigDict(
        use_attribute_docstrings=True,
    )

    status: str
    """Status reported by the remote store, `success` when the write went through."""

    version: int | None = None
    """Version the remote store assigned to the dashboard."""

    message: str | None = None
    """Additional information sent back by the remote store, usually on failure."""

    @property
    def succeeded(self) -> bool:
        """Return True if the remote store accepted the write."""
        return self.status == "success"
