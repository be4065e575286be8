"""Login, token refresh and logout"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sacco_admin.api.dependencies import (
    get_auth_service,
    get_client_context,
    get_current_principal,
)
from sacco_admin.api.v1.schemas import (
    AuthTokens,
    Envelope,
    LoginRequest,
    RefreshTokenRequest,
    UserProfile,
)
from sacco_admin.domain.models import ClientContext, Principal, TokenPair, UserRole
from sacco_admin.infrastructure.database.models import User
from sacco_admin.infrastructure.database.session import get_db
from sacco_admin.services.auth import AuthService

router = APIRouter()
member_router = APIRouter()


def _tokens(pair: TokenPair, user: User) -> AuthTokens:
    return AuthTokens(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        user=UserProfile.model_validate(user),
    )


@router.post("/login", response_model=Envelope[AuthTokens])
def admin_login(
    body: LoginRequest,
    context: ClientContext = Depends(get_client_context),
    auth: AuthService = Depends(get_auth_service),
    db: Session = Depends(get_db),
):
    """Admin login; members get the same 401 as a wrong password"""
    pair, user = auth.login(body.email, body.password, context, required_role=UserRole.ADMIN.value)
    db.commit()
    return Envelope(message="Login successful", data=_tokens(pair, user))


@router.post("/refresh", response_model=Envelope[AuthTokens])
def refresh_token(
    body: RefreshTokenRequest,
    context: ClientContext = Depends(get_client_context),
    auth: AuthService = Depends(get_auth_service),
    db: Session = Depends(get_db),
):
    """Exchange a refresh token for a new pair; the presented token is revoked"""
    pair, user = auth.refresh(body.refresh_token, context)
    db.commit()
    return Envelope(message="Token refreshed successfully", data=_tokens(pair, user))


@router.post("/logout", response_model=Envelope[None])
def logout(
    body: RefreshTokenRequest,
    principal: Principal = Depends(get_current_principal),
    auth: AuthService = Depends(get_auth_service),
    db: Session = Depends(get_db),
):
    """Revoke the refresh token and the access token used for this call"""
    auth.logout(body.refresh_token, principal)
    db.commit()
    return Envelope(message="Logged out successfully")


@member_router.post("/login", response_model=Envelope[AuthTokens])
def member_login(
    body: LoginRequest,
    context: ClientContext = Depends(get_client_context),
    auth: AuthService = Depends(get_auth_service),
    db: Session = Depends(get_db),
):
    """Login for any active account; used by the member-facing repayment flow"""
    pair, user = auth.login(body.email, body.password, context)
    db.commit()
    return Envelope(message="Login successful", data=_tokens(pair, user))
