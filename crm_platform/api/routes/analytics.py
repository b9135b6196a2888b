"""
Analytics API routes.
"""
from fastapi import APIRouter, Depends

from crm_platform.api.dependencies import get_analytics_service
from crm_platform.schemas.analytics import AnalyticsOverview
from crm_platform.services.analytics_service import AnalyticsService


router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("/overview", response_model=AnalyticsOverview)
def analytics_overview(analytics: AnalyticsService = Depends(get_analytics_service)):
    """Dashboard totals across customers, segments and campaigns."""
    return analytics.overview()
