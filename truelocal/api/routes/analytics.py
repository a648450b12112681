"""
Analytics API Routes
====================

  GET /api/v1/analytics/dashboard -- Dashboard figures for the caller
"""

from __future__ import annotations

from fastapi import APIRouter

from truelocal.api.deps import CurrentUser, DBSession
from truelocal.api.schemas.analytics import DashboardStatsOut
from truelocal.services import analyticsService

router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.get(
    "/dashboard",
    response_model=DashboardStatsOut,
    summary="Dashboard statistics",
    description=(
        "Totals, 30-day booking trend, recent activity, rating distribution "
        "and response rate for the caller's current account type. Service "
        "counts and top services are only filled in for providers."
    ),
)
async def get_dashboard(
    db: DBSession,
    current_user: CurrentUser,
) -> DashboardStatsOut:
    stats = await analyticsService.get_dashboard_stats(
        db, current_user.id, current_user.user_type,
    )
    return DashboardStatsOut.model_validate(stats)
