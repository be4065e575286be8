"""Profile self-service and admin user management"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy.exc import IntegrityError
from sacco_admin.domain.exceptions import ConflictError, NotFoundError, UnauthorizedError
from sacco_admin.domain.models import NotificationIntent, Page, UserStatus
from sacco_admin.domain.pagination import build_page, offset_for
from sacco_admin.infrastructure.database.models import RefreshToken, User
from sacco_admin.infrastructure.database.repositories import CreditRepository, UserRepository
from sacco_admin.services.auth import hash_password, verify_password
from sacco_admin.services.notifications import NotificationOutboxWriter
from sacco_admin.utils.date_utils import as_utc, utcnow

RECENT_LOGINS_LIMIT = 10


@dataclass
class UserListItem:
    user: User
    last_login_at: Optional[datetime]
    sessions_active: int


@dataclass
class DeviceActivity:
    device_info: Optional[str]
    ip_address: Optional[str]
    last_seen_at: datetime


@dataclass
class UserDetails:
    """Everything the admin user page shows, gathered in one place"""

    user: User
    credit_counts: Dict[str, int]
    sessions_active: int
    recent_logins: List[RefreshToken] = field(default_factory=list)
    devices: List[DeviceActivity] = field(default_factory=list)


def summarize_devices(logins: List[RefreshToken]) -> List[DeviceActivity]:
    """Most recent sighting per device string, newest first"""
    latest: Dict[Optional[str], DeviceActivity] = {}
    for login in logins:
        seen = latest.get(login.device_info)
        if seen is None or as_utc(login.created_at) > as_utc(seen.last_seen_at):
            latest[login.device_info] = DeviceActivity(
                device_info=login.device_info,
                ip_address=login.ip_address,
                last_seen_at=login.created_at,
            )
    return sorted(latest.values(), key=lambda d: as_utc(d.last_seen_at), reverse=True)


class UsersService:
    def __init__(self, users: UserRepository, credits: CreditRepository, outbox: NotificationOutboxWriter):
        self.users = users
        self.credits = credits
        self.outbox = outbox

    def _require(self, user_id: uuid.UUID) -> User:
        user = self.users.find_by_id(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def get_profile(self, user_id: uuid.UUID) -> User:
        return self._require(user_id)

    def update_profile(
        self,
        user_id: uuid.UUID,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> User:
        user = self._require(user_id)

        if phone_number and phone_number != user.phone_number:
            if self.users.find_by_phone(phone_number):
                raise ConflictError("Phone number is already in use")

        changes = {
            key: value
            for key, value in (
                ("first_name", first_name),
                ("last_name", last_name),
                ("phone_number", phone_number),
            )
            if value
        }
        try:
            with self.users.db.begin_nested():
                return self.users.update(user, **changes)
        except IntegrityError as e:
            # Another request took the number between the lookup and the write
            raise ConflictError("Phone number is already in use") from e

    def change_password(self, user_id: uuid.UUID, current_password: str, new_password: str) -> None:
        user = self._require(user_id)
        if not verify_password(current_password, user.password):
            raise UnauthorizedError("Current password is incorrect")

        self.users.update(user, password=hash_password(new_password))
        self.outbox.enqueue(
            NotificationIntent(
                user_id=user.id,
                title="Password changed",
                message="Your account password was changed successfully.",
            )
        )

    def list_users(
        self,
        page: int = 1,
        limit: int = 10,
        role: Optional[str] = None,
        status: Optional[str] = None,
        email: Optional[str] = None,
        sort_by: str = "createdAt",
        order: str = "desc",
    ) -> Page[UserListItem]:
        users = self.users.list(offset_for(page, limit), limit, role, status, email, sort_by, order)
        total = self.users.count(role, status, email)
        now = utcnow()
        items = [
            UserListItem(
                user=user,
                last_login_at=self.users.find_last_login(user.id),
                sessions_active=self.users.count_active_sessions(user.id, now),
            )
            for user in users
        ]
        return build_page(items, total, page, limit)

    def get_user_details(self, user_id: uuid.UUID) -> UserDetails:
        user = self.users.find_detailed_by_id(user_id)
        if not user:
            raise NotFoundError("User not found")

        recent_logins = self.users.find_recent_logins(user.id, RECENT_LOGINS_LIMIT)
        return UserDetails(
            user=user,
            credit_counts=self.credits.count_by_status(user.id),
            sessions_active=self.users.count_active_sessions(user.id, utcnow()),
            recent_logins=recent_logins,
            devices=summarize_devices(recent_logins),
        )

    def update_user_status(self, user_id: uuid.UUID, status: str) -> User:
        user = self._require(user_id)
        return self.users.update(user, status=status)

    def soft_delete_user(self, user_id: uuid.UUID) -> None:
        user = self._require(user_id)
        self.users.update(user, status=UserStatus.DELETED.value)
