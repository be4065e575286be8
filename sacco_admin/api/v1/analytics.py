"""GET /admin/savings/analytics and GET /admin/analytics/overview"""

from fastapi import APIRouter, Depends

from sacco_admin.api.dependencies import get_analytics_service, get_savings_service, require_admin
from sacco_admin.api.v1.schemas import (
    CountTotalActive,
    CreditOverview,
    Envelope,
    LoginsOverview,
    OverviewSchema,
    SavingsAnalyticsSchema,
    SavingsOverview,
    SessionsOverview,
)
from sacco_admin.domain.models import Principal
from sacco_admin.services.analytics import AnalyticsService, SavingsService

savings_router = APIRouter()
router = APIRouter()


@savings_router.get("/analytics", response_model=Envelope[SavingsAnalyticsSchema])
def get_savings_analytics(
    _: Principal = Depends(require_admin),
    service: SavingsService = Depends(get_savings_service),
):
    """Total balance across accounts plus deposit and withdrawal counts"""
    return Envelope(data=SavingsAnalyticsSchema.model_validate(service.get_analytics()))


@router.get("/overview", response_model=Envelope[OverviewSchema])
def get_overview(
    _: Principal = Depends(require_admin),
    service: AnalyticsService = Depends(get_analytics_service),
):
    overview = service.get_overview()
    return Envelope(
        data=OverviewSchema(
            users=CountTotalActive(total=overview.users_total, active=overview.users_active),
            credits=CreditOverview(total=overview.credits_total, by_status=overview.credits_by_status),
            savings=SavingsOverview(total_balance=overview.savings_total_balance),
            sessions=SessionsOverview(active=overview.sessions_active),
            logins=LoginsOverview(last24h=overview.logins_last_24h),
        )
    )
