"""API endpoints for the onboarding API"""

from .admin import router as admin_router
from .companies import router as companies_router
from .compliance import router as compliance_router
from .documents import router as documents_router
from .payments import router as payments_router
from .routes import router

__all__ = [
    "router",
    "admin_router",
    "companies_router",
    "compliance_router",
    "documents_router",
    "payments_router",
]
