"""Communications Service models package."""

from services.communications_service.models.core import EmailQueueItem
from services.communications_service.models.enums import EmailQueueStatus

__all__ = [
    "EmailQueueItem",
    "EmailQueueStatus",
]
