"""Domain models - pure Python dataclasses representing business entities"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")


class CreditStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DISBURSED = "disbursed"
    REPAID = "repaid"


class UserRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class UserStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class OutboxStatus(str, Enum):
    PENDING = "pending"
    SENDING = "sending"
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass
class Page(Generic[T]):
    """One page of a listing plus the counts needed to render a pager"""

    items: List[T]
    total: int
    page: int
    limit: int
    total_pages: int


@dataclass
class BalanceSummary:
    """Owed, repaid and remaining amounts for one credit request"""

    total_owed: Decimal
    total_repaid: Decimal
    remaining: Decimal


@dataclass
class NotificationIntent:
    """In-app message to deliver to a user once the transition commits"""

    user_id: uuid.UUID
    title: str
    message: str
    type: str = "in_app"


@dataclass
class ClientContext:
    """Where a login or refresh came from"""

    device_info: Optional[str] = None
    ip_address: Optional[str] = None


@dataclass
class Principal:
    """Authenticated caller, decoded from a bearer access token"""

    user_id: uuid.UUID
    role: str
    jti: str
    expires_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
