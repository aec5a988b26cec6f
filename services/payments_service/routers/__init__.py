"""Routers package."""

from services.payments_service.routers.admin import router as admin_router
from services.payments_service.routers.callbacks import router as callbacks_router
from services.payments_service.routers.enrollment import router as enrollment_router
from services.payments_service.routers.gateway_links import (
    router as gateway_links_router,
)

__all__ = [
    "admin_router",
    "callbacks_router",
    "enrollment_router",
    "gateway_links_router",
]
