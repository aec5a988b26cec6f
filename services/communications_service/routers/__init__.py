"""Communications service routers package."""

from services.communications_service.routers.queue import router as queue_router
from services.communications_service.routers.webhooks import router as webhooks_router

__all__ = [
    "queue_router",
    "webhooks_router",
]
