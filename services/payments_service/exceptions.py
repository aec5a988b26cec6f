"""Domain exceptions for the payments service."""

from typing import Any, Optional


class EnrollmentValidationError(Exception):
    """The enrollment payload failed validation. Nothing was written."""

    def __init__(self, message: str, errors: Optional[list[dict[str, Any]]] = None):
        self.message = message
        self.errors = errors or []
        super().__init__(message)


class GatewayError(Exception):
    """A payment gateway rejected a request or could not be reached."""

    def __init__(
        self,
        message: str,
        gateway: str,
        status_code: Optional[int] = None,
        response_data: Optional[dict] = None,
    ):
        self.message = message
        self.gateway = gateway
        self.status_code = status_code
        self.response_data = response_data or {}
        super().__init__(f"[{gateway}] {message}")
