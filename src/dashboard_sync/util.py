import json
import os
import re
import tempfile
import unicodedata
from pathlib import Path
from typing import Any

from dashboard_sync.errors import ContentMalformed

_NON_SLUG_CHARACTERS = re.compile(r"[^a-z0-9]+")


def slugify(title: str) -> str:
    """Convert a dashboard title to the lowercase, URL and filesystem safe slug Grafana uses.

    Args:
        title (str): The title to convert.

    Returns:
        str: The slug, e.g. "My Dashboard (prod)" becomes "my-dashboard-prod".
    """
    normalized = unicodedata.normalize("NFKD", title).encode("ascii", "ignore").decode("ascii")
    return _NON_SLUG_CHARACTERS.sub("-", normalized.lower()).strip("-")


def parse_dashboard(content: bytes, *, source: str = "<content>") -> dict[str, Any]:
    """Parse a dashboard's JSON description.

    Raises:
        ContentMalformed: If the content is not a JSON object.
    """
    try:
        parsed = json.loads(content)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ContentMalformed(source, f"invalid JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise ContentMalformed(source, "a dashboard must be a JSON object")

    return parsed


def dashboard_title(content: bytes, *, source: str = "<content>") -> str:
    """Return the title found in a dashboard's JSON description, or an empty string if it has none."""
    title = parse_dashboard(content, source=source).get("title")
    return title if isinstance(title, str) else ""


def dashboard_slug(content: bytes, *, source: str = "<content>") -> str:
    """Compute the slug of the dashboard described by the given JSON content."""
    return slugify(dashboard_title(content, source=source))


def indent_json(content: bytes) -> bytes:
    """Re-indent JSON content with tabs, keeping the key order, so diffs between versions stay readable."""
    parsed = json.loads(content)
    return (json.dumps(parsed, indent="\t", ensure_ascii=False) + "\n").encode("utf-8")


def atomic_write(path: Path, data: bytes) -> None:
    """Replace the file at `path` with `data` in a single rename, so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(temp_name, 0o644)
        os.replace(temp_name, path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise
