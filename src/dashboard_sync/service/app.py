from fastapi import FastAPI

from dashboard_sync import DEFAULT_BRANCH
from dashboard_sync.service.models import ContainsStatus
from dashboard_sync.service.webhook import WebhookHandler, create_webhook_router


def create_app(
    handler: WebhookHandler,
    *,
    path: str,
    secret: str,
    branch: str = DEFAULT_BRANCH,
) -> FastAPI:
    """Build the webhook application, receiving GitLab push events on `path`."""
    app = FastAPI(title="Grafana dashboard sync", docs_url=None, redoc_url=None)

    app.include_router(create_webhook_router(handler, path=path, secret=secret, branch=branch), tags=["webhook"])

    @app.get("/heartbeat")
    async def heartbeat() -> ContainsStatus:
        """Heartbeat endpoint to check the service status."""
        return ContainsStatus(status="ok")

    return app
