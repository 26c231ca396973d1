"""
Analytics Router

Admin dashboard endpoints. Both return a fallback payload instead of an error
when the database cannot be queried.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from homework_helper.database import get_db
from homework_helper.dependencies.auth import AuthenticatedUser, get_admin_user
from homework_helper.schemas.analytics import SystemDashboardResponse, UsageTrendsResponse
from homework_helper.services import analytics_service
from homework_helper.services.analytics_service import DashboardFilters

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


def get_dashboard_filters(
    dateRange: Optional[str] = Query(None, description="7days | 30days | all"),
    category: Optional[str] = Query(None, description="Subject, or 'all'"),
    search: Optional[str] = Query(None),
    startDate: Optional[str] = Query(None, description="ISO date, used with endDate"),
    endDate: Optional[str] = Query(None, description="ISO date, used with startDate"),
) -> DashboardFilters:
    return DashboardFilters.from_query(
        date_range=dateRange,
        category=category,
        search=search,
        start_date=startDate,
        end_date=endDate,
    )


@router.get("/usage-trends", response_model=UsageTrendsResponse)
def get_usage_trends(
    admin: Optional[AuthenticatedUser] = Depends(get_admin_user),
    filters: DashboardFilters = Depends(get_dashboard_filters),
    db: Session = Depends(get_db),
):
    """Active students, average accuracy and common struggle topics."""
    return analytics_service.get_usage_trends(db, filters)


@router.get("/system-dashboard", response_model=SystemDashboardResponse)
def get_system_dashboard(
    admin: Optional[AuthenticatedUser] = Depends(get_admin_user),
    filters: DashboardFilters = Depends(get_dashboard_filters),
    db: Session = Depends(get_db),
):
    """Category distribution of answered questions and the top questions."""
    return analytics_service.get_system_dashboard(db, filters)
