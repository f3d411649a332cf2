"""Dashboard routes."""

from fastapi import APIRouter

from tillpoint.api.deps import CurrentStaff, Dashboard
from tillpoint.schemas.menu import DashboardStatsResponse

router = APIRouter()


@router.get("/stats", response_model=DashboardStatsResponse)
def dashboard_stats(staff: CurrentStaff, dashboard: Dashboard):
    return dashboard.stats()
