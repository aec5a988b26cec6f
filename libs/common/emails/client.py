"""
Centralized Email Client for service-to-service email communication.

Other services never talk to the mail provider directly. They enqueue
templated emails in the Communications Service, which owns the templates,
the daily send cap and the delivery webhooks.

Usage:
    from libs.common.emails.client import get_email_client

    email_client = get_email_client()

    queued = await email_client.queue_template(
        template_type="enrollment_confirmation",
        to_email="tutor@example.com",
        template_data={"tutor_name": "Ana", "player_names": "Luis, Sofia"},
        metadata={"family_id": "...", "player_id": "..."},
    )
"""

from datetime import date
from typing import Any, Optional

import httpx
from libs.common.config import get_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)


class EmailClient:
    """
    HTTP client for queueing emails in the Communications Service.

    Authenticates with a short-lived service-role JWT so that the queue
    endpoints (which require service_role auth) accept the requests.
    """

    def __init__(self, base_url: Optional[str] = None):
        settings = get_settings()
        self.base_url = (base_url or settings.COMMUNICATIONS_SERVICE_URL).rstrip("/")
        self.timeout = 30.0

    def _get_auth_headers(self) -> dict[str, str]:
        from libs.auth.dependencies import _service_role_jwt

        token = _service_role_jwt("email_client")
        return {"Authorization": f"Bearer {token}"}

    async def queue_template(
        self,
        template_type: str,
        to_email: str,
        template_data: dict[str, Any],
        metadata: Optional[dict[str, Any]] = None,
        scheduled_for: Optional[date] = None,
    ) -> Optional[str]:
        """
        Queue a templated email for the next dispatch run.

        Available template types:
        - enrollment_confirmation: enrollment received and paid
        - payment_confirmation: payment received for an existing enrollment

        Returns:
            The queue item id, or None when the Communications Service
            rejected the request or could not be reached.
        """
        payload: dict[str, Any] = {
            "template_type": template_type,
            "to_email": to_email,
            "template_data": template_data,
            "metadata": metadata or {},
        }
        if scheduled_for:
            payload["scheduled_for"] = scheduled_for.isoformat()

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/email/queue",
                    json=payload,
                    headers=self._get_auth_headers(),
                )
        except httpx.RequestError as e:
            logger.error(f"Failed to connect to Communications Service: {e}")
            return None

        if response.status_code not in (200, 201):
            logger.error(
                f"Email queue API returned {response.status_code}: {response.text}"
            )
            return None

        return response.json().get("id")


_email_client: Optional[EmailClient] = None


def get_email_client() -> EmailClient:
    """Get or create the singleton EmailClient instance."""
    global _email_client
    if _email_client is None:
        _email_client = EmailClient()
    return _email_client
