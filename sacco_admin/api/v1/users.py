"""Admin profile and user management endpoints"""

from typing import Literal, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from sacco_admin.api.dependencies import get_notification_dispatcher, get_users_service, require_admin
from sacco_admin.api.v1.common import paginated, parse_id
from sacco_admin.api.v1.schemas import (
    AdminUserDetails,
    AdminUserListItem,
    ChangePasswordRequest,
    CreditCounts,
    CreditRequestWithRepayments,
    DeviceSchema,
    Envelope,
    LoginActivity,
    PaginatedEnvelope,
    SavingsAccountSchema,
    UpdateProfileRequest,
    UpdateUserStatusRequest,
    UserActivity,
    UserCredit,
    UserProfile,
)
from sacco_admin.domain.models import Principal
from sacco_admin.infrastructure.database.session import get_db
from sacco_admin.services.notifications import NotificationDispatcher
from sacco_admin.services.users import UserDetails, UserListItem, UsersService

router = APIRouter()

UserSortField = Literal["createdAt", "email", "firstName", "lastName", "role", "status"]


def _list_item(item: UserListItem) -> AdminUserListItem:
    return AdminUserListItem(
        **UserProfile.model_validate(item.user).model_dump(),
        last_login_at=item.last_login_at,
        sessions_active=item.sessions_active,
    )


def _details(details: UserDetails) -> AdminUserDetails:
    user = details.user
    account = user.savings_account
    return AdminUserDetails(
        **UserProfile.model_validate(user).model_dump(),
        savings_account=SavingsAccountSchema.model_validate(account) if account else None,
        credit=UserCredit(
            counts=CreditCounts(**details.credit_counts),
            requests=[CreditRequestWithRepayments.model_validate(r) for r in user.credit_requests],
        ),
        activity=UserActivity(
            sessions_active=details.sessions_active,
            recent_logins=[LoginActivity.model_validate(login) for login in details.recent_logins],
            devices=[DeviceSchema.model_validate(device) for device in details.devices],
        ),
    )


@router.get("/profile", response_model=Envelope[UserProfile])
def get_profile(
    principal: Principal = Depends(require_admin),
    service: UsersService = Depends(get_users_service),
):
    return Envelope(data=UserProfile.model_validate(service.get_profile(principal.user_id)))


@router.put("/profile", response_model=Envelope[UserProfile])
def update_profile(
    body: UpdateProfileRequest,
    principal: Principal = Depends(require_admin),
    service: UsersService = Depends(get_users_service),
    db: Session = Depends(get_db),
):
    """Update own name or phone number; 409 when the phone number is taken"""
    user = service.update_profile(principal.user_id, body.first_name, body.last_name, body.phone_number)
    db.commit()
    return Envelope(message="Profile updated successfully", data=UserProfile.model_validate(user))


@router.patch("/password", response_model=Envelope[None])
def change_password(
    body: ChangePasswordRequest,
    background_tasks: BackgroundTasks,
    principal: Principal = Depends(require_admin),
    service: UsersService = Depends(get_users_service),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    db: Session = Depends(get_db),
):
    service.change_password(principal.user_id, body.current_password, body.new_password)
    db.commit()
    background_tasks.add_task(dispatcher.dispatch_pending)
    return Envelope(message="Password changed successfully")


@router.get("/users", response_model=PaginatedEnvelope[AdminUserListItem])
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    email: Optional[str] = Query(None, description="Case-insensitive substring match"),
    sort_by: UserSortField = Query("createdAt", alias="sortBy"),
    order: Literal["asc", "desc"] = Query("desc"),
    _: Principal = Depends(require_admin),
    service: UsersService = Depends(get_users_service),
):
    result = service.list_users(page, limit, role, status, email, sort_by, order)
    return paginated(result, _list_item)


@router.get("/users/{user_id}", response_model=Envelope[AdminUserDetails])
def get_user_details(
    user_id: str,
    _: Principal = Depends(require_admin),
    service: UsersService = Depends(get_users_service),
):
    """Profile, savings account, credit history and login activity for one user"""
    details = service.get_user_details(parse_id(user_id, "user ID"))
    return Envelope(data=_details(details))


@router.patch("/users/{user_id}/status", response_model=Envelope[UserProfile])
def update_user_status(
    user_id: str,
    body: UpdateUserStatusRequest,
    _: Principal = Depends(require_admin),
    service: UsersService = Depends(get_users_service),
    db: Session = Depends(get_db),
):
    user = service.update_user_status(parse_id(user_id, "user ID"), body.status)
    db.commit()
    return Envelope(message="Status updated", data=UserProfile.model_validate(user))


@router.delete("/users/{user_id}", response_model=Envelope[None])
def delete_user(
    user_id: str,
    _: Principal = Depends(require_admin),
    service: UsersService = Depends(get_users_service),
    db: Session = Depends(get_db),
):
    """Soft delete: the account is kept with status "deleted" """
    service.soft_delete_user(parse_id(user_id, "user ID"))
    db.commit()
    return Envelope(message="User deleted")
