from datetime import timedelta
from typing import Any, Optional

import pytest
from jose import jwt

from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now

settings = get_settings()


class FakeEmailClient:
    """Records queued emails instead of calling the Communications Service."""

    def __init__(self):
        self.queued: list[dict[str, Any]] = []
        self.fail = False

    async def queue_template(
        self,
        template_type: str,
        to_email: str,
        template_data: dict[str, Any],
        metadata: Optional[dict[str, Any]] = None,
        scheduled_for=None,
    ) -> Optional[str]:
        if self.fail:
            raise RuntimeError("communications service unavailable")
        self.queued.append(
            {
                "template_type": template_type,
                "to_email": to_email,
                "template_data": template_data,
                "metadata": metadata or {},
            }
        )
        return f"queued-{len(self.queued)}"


@pytest.fixture
def fake_email_client() -> FakeEmailClient:
    return FakeEmailClient()


def make_token(
    sub: str = "user-1",
    role: str = "authenticated",
    app_role: Optional[str] = None,
) -> str:
    now = utc_now()
    payload = {
        "sub": sub,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=5)).timestamp()),
    }
    if app_role:
        payload["app_metadata"] = {"role": app_role}
    return jwt.encode(payload, settings.SUPABASE_JWT_SECRET, algorithm="HS256")


@pytest.fixture
def service_headers() -> dict:
    return {"Authorization": f"Bearer {make_token('service:test', role='service_role')}"}


@pytest.fixture
def admin_headers() -> dict:
    return {"Authorization": f"Bearer {make_token('staff-1', app_role='admin')}"}


@pytest.fixture
def member_headers() -> dict:
    return {"Authorization": f"Bearer {make_token('parent-1')}"}
