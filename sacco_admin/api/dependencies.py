"""Dependency injection for FastAPI endpoints"""

from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from sacco_admin.domain.exceptions import ForbiddenError, UnauthorizedError
from sacco_admin.domain.models import ClientContext, Principal
from sacco_admin.infrastructure.database.repositories import (
    CreditRepository,
    NotificationRepository,
    SavingsRepository,
    TokenRepository,
    UserRepository,
)
from sacco_admin.infrastructure.database.session import SessionLocal, get_db
from sacco_admin.services.analytics import AnalyticsService, SavingsService
from sacco_admin.services.auth import AuthService
from sacco_admin.services.credit import CreditService
from sacco_admin.services.notifications import (
    NotificationDispatcher,
    NotificationOutboxWriter,
    NotificationsService,
)
from sacco_admin.services.users import UsersService

bearer_scheme = HTTPBearer(auto_error=False)


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_client_context(request: Request) -> ClientContext:
    """User-Agent and client IP (first X-Forwarded-For hop, else the peer address)"""
    forwarded = request.headers.get("x-forwarded-for", "")
    ip = forwarded.split(",")[0].strip() or (request.client.host if request.client else None)
    return ClientContext(device_info=request.headers.get("user-agent"), ip_address=ip or None)


# Services


def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    return AuthService(UserRepository(db), TokenRepository(db))


def get_credit_service(db: Session = Depends(get_db)) -> CreditService:
    return CreditService(CreditRepository(db), NotificationOutboxWriter(NotificationRepository(db)))


def get_users_service(db: Session = Depends(get_db)) -> UsersService:
    return UsersService(
        UserRepository(db),
        CreditRepository(db),
        NotificationOutboxWriter(NotificationRepository(db)),
    )


def get_savings_service(db: Session = Depends(get_db)) -> SavingsService:
    return SavingsService(SavingsRepository(db))


def get_analytics_service(db: Session = Depends(get_db)) -> AnalyticsService:
    return AnalyticsService(UserRepository(db), CreditRepository(db), SavingsRepository(db), TokenRepository(db))


def get_notifications_service(db: Session = Depends(get_db)) -> NotificationsService:
    return NotificationsService(NotificationRepository(db))


def get_notification_dispatcher() -> NotificationDispatcher:
    """Dispatcher opens its own sessions; it runs after the request session is closed"""
    return NotificationDispatcher(SessionLocal)


# Auth


def get_access_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> str:
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise UnauthorizedError("Authentication required")
    return credentials.credentials


def get_current_principal(
    token: str = Depends(get_access_token),
    auth: AuthService = Depends(get_auth_service),
) -> Principal:
    return auth.authenticate(token)


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise ForbiddenError("Admin access required")
    return principal
