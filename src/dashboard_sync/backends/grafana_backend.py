"""Grafana HTTP API backend.

Talks to the slug-addressed dashboard endpoints of the Grafana HTTP API:

- `GET /api/search?type=dash-db` to list dashboards
- `GET /api/dashboards/db/<slug>` to fetch one with its version
- `POST /api/dashboards/db` to create or overwrite one
- `DELETE /api/dashboards/db/<slug>` to delete one
"""

from __future__ import annotations

import json
from types import TracebackType
from typing import Any, override

import httpx
from loguru import logger

from dashboard_sync.backends.base import DashboardStore
from dashboard_sync.errors import NotFound, RemoteRejected, RemoteUnavailable
from dashboard_sync.records import Dashboard, DashboardWriteResult
from dashboard_sync.util import parse_dashboard, slugify

_AUTH_FAILURE_CODES = {httpx.codes.UNAUTHORIZED, httpx.codes.FORBIDDEN}


class GrafanaBackend(DashboardStore):
    """Remote dashboard store backed by a Grafana instance."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        timeout_seconds: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the Grafana client.

        Args:
            base_url: Base URL of the Grafana instance. A trailing slash is stripped, as Grafana
                doesn't support double slashes in its API routes.
            api_key: API key sent as a bearer token with every request.
            timeout_seconds: Timeout for every request.
            transport: Optional httpx transport, mostly useful for tests.
        """
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout_seconds,
            transport=transport,
        )
        logger.debug(f"GrafanaBackend initialized for {self.base_url}")

    def __enter__(self) -> GrafanaBackend:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        self._client.close()

    def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Perform a request against an API route, without the `/api/` part.

        Raises:
            RemoteUnavailable: If the request couldn't be performed or the credentials were refused.
        """
        route = f"/api/{endpoint}"
        logger.debug(f"Querying the Grafana HTTP API: {method} {route}")

        try:
            response = self._client.request(method, route, params=params, json=json_body)
        except httpx.HTTPError as e:
            logger.error(f"Failed to reach Grafana at {self.base_url}{route}: {e}")
            raise RemoteUnavailable(f"Failed to reach Grafana at {self.base_url}: {e}") from e

        logger.debug(f"The Grafana HTTP API responded to {method} {route} with {response.status_code}")

        if response.status_code in _AUTH_FAILURE_CODES:
            raise RemoteUnavailable(
                f"Grafana refused the credentials ({response.status_code}) on {method} {route}",
            )

        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:  # noqa: ANN401
        try:
            return response.json()
        except ValueError as e:
            raise RemoteRejected(
                f"Grafana sent a response that isn't JSON: {e}",
                status_code=response.status_code,
            ) from e

    @staticmethod
    def _rejection_message(response: httpx.Response) -> str:
        """Extract Grafana's error message from a response body, if any."""
        try:
            body = response.json()
        except ValueError:
            return response.text
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return response.text

    @override
    def list_identifiers(self) -> list[str]:
        response = self._request("GET", "search", params={"type": "dash-db"})
        if not response.is_success:
            raise RemoteRejected(
                f"Failed to list dashboards ({response.status_code}): {self._rejection_message(response)}",
                status_code=response.status_code,
            )

        results = self._json(response)
        if not isinstance(results, list):
            raise RemoteRejected("Grafana's search response isn't a list", status_code=response.status_code)

        identifiers: list[str] = []
        for result in results:
            if not isinstance(result, dict):
                raise RemoteRejected(
                    f"Unexpected entry in Grafana's search response: {result!r}",
                    status_code=response.status_code,
                )
            if result.get("type", "dash-db") != "dash-db":
                continue
            uri = str(result.get("uri") or "")
            title = str(result.get("title") or "")
            identifier = uri.removeprefix("db/") if uri.startswith("db/") else slugify(title)
            if identifier:
                identifiers.append(identifier)

        logger.debug(f"Grafana knows {len(identifiers)} dashboards")
        return identifiers

    @override
    def get(self, identifier: str) -> Dashboard:
        response = self._request("GET", f"dashboards/db/{identifier}")
        if response.status_code == httpx.codes.NOT_FOUND:
            raise NotFound(identifier)
        if not response.is_success:
            raise RemoteRejected(
                f"Failed to fetch dashboard {identifier} ({response.status_code}): "
                f"{self._rejection_message(response)}",
                status_code=response.status_code,
                identifier=identifier,
            )

        body = self._json(response)
        try:
            dashboard_json: dict[str, Any] = body["dashboard"]
            meta: dict[str, Any] = body.get("meta", {})
            version = int(meta.get("version", dashboard_json.get("version", 0)))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise RemoteRejected(
                f"Unexpected response when fetching dashboard {identifier}: {e}",
                status_code=response.status_code,
                identifier=identifier,
            ) from e

        content = json.dumps(dashboard_json, ensure_ascii=False).encode("utf-8")
        return Dashboard.from_content(content, version)

    @override
    def create_or_update(self, content: bytes) -> DashboardWriteResult:
        dashboard_json = parse_dashboard(content)
        slug = slugify(str(dashboard_json.get("title", "")))

        response = self._request(
            "POST",
            "dashboards/db",
            json_body={"dashboard": dashboard_json, "overwrite": True},
        )

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        result = DashboardWriteResult(
            status=str(body.get("status", "success" if response.is_success else "error")),
            version=body.get("version"),
            message=body.get("message"),
        )

        if not response.is_success or not result.succeeded:
            raise RemoteRejected(
                f"Failed to update dashboard {slug} ({response.status_code} {result.status}): {result.message}",
                status_code=response.status_code,
                identifier=slug,
            )

        logger.debug(f"Grafana stored dashboard {slug} at version {result.version}")
        return result

    @override
    def delete(self, identifier: str) -> None:
        response = self._request("DELETE", f"dashboards/db/{identifier}")
        if response.status_code == httpx.codes.NOT_FOUND:
            raise NotFound(identifier)
        if not response.is_success:
            raise RemoteRejected(
                f"Failed to delete dashboard {identifier} ({response.status_code}): "
                f"{self._rejection_message(response)}",
                status_code=response.status_code,
                identifier=identifier,
            )
        logger.debug(f"Deleted dashboard {identifier} from Grafana")
