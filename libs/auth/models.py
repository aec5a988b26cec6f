from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class AuthUser(BaseModel):
    """
    Represents an authenticated caller from a Supabase-issued JWT.

    Admin staff carry ``app_metadata.role == "admin"``; internal services
    carry ``role == "service_role"``.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="sub")
    email: Optional[EmailStr] = None
    role: str = "authenticated"
    app_metadata: dict = Field(default_factory=dict)

    @property
    def is_service(self) -> bool:
        return self.role == "service_role"

    @property
    def is_admin(self) -> bool:
        return self.is_service or self.app_metadata.get("role") == "admin"
