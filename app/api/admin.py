"""
Admin dashboard endpoints.

- GET /v1/admin/dashboard/stats             - Company and revenue counts
"""

from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.services import companies

router = APIRouter(prefix="/admin", tags=["Admin"])


class DashboardStatsResponse(BaseModel):
    total_companies: int
    active_companies: int
    payment_pending: int
    kyc_pending: int
    agreements_pending: int
    ready_for_activation: int
    total_revenue: Decimal
    revenue_this_month: Decimal
    stage_counts: dict[str, int]


@router.get("/dashboard/stats", response_model=DashboardStatsResponse)
async def dashboard_stats(db: AsyncSession = Depends(get_db)):
    stats = await companies.get_dashboard_stats(db)
    return DashboardStatsResponse(**stats.__dict__)
