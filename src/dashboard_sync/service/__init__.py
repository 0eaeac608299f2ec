"""HTTP service receiving repository push notifications."""

from dashboard_sync.service.app import create_app
from dashboard_sync.service.webhook import WebhookHandler, create_webhook_router

__all__ = [
    "WebhookHandler",
    "create_app",
    "create_webhook_router",
]
