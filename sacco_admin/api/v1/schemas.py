"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Dict, Generic, List, Literal, Optional, TypeVar
from uuid import UUID
from pydantic import BaseModel, ConfigDict, EmailStr, Field, PlainSerializer
from pydantic.alias_generators import to_camel

T = TypeVar("T")

# Amounts go out as JSON numbers, as the dashboard expects
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# Envelopes


class Envelope(ApiModel, Generic[T]):
    """Single-resource response: {success, message?, data}"""

    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None


class Pagination(ApiModel):
    page: int
    limit: int
    total: int
    total_pages: int


class PaginatedEnvelope(ApiModel, Generic[T]):
    """List response: {success, data, pagination}"""

    success: bool = True
    data: List[T]
    pagination: Pagination


class ErrorEnvelope(ApiModel):
    success: bool = False
    message: str
    errors: Optional[List[Dict]] = None


# Auth


class LoginRequest(ApiModel):
    email: EmailStr
    password: str = Field(..., min_length=1, description="Account password")


class RefreshTokenRequest(ApiModel):
    refresh_token: str = Field(..., min_length=1)


class UserProfile(ApiModel):
    id: UUID
    email: str
    first_name: str
    last_name: str
    phone_number: Optional[str] = None
    role: str
    status: str
    created_at: datetime
    updated_at: datetime


class AuthTokens(ApiModel):
    access_token: str
    refresh_token: str
    user: UserProfile


# Users


class UpdateProfileRequest(ApiModel):
    first_name: Optional[str] = Field(None, min_length=1)
    last_name: Optional[str] = Field(None, min_length=1)
    phone_number: Optional[str] = Field(None, min_length=1)


class ChangePasswordRequest(ApiModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, description="At least 8 characters")


class UpdateUserStatusRequest(ApiModel):
    status: Literal["active", "suspended", "deleted"]


class AdminUserListItem(UserProfile):
    last_login_at: Optional[datetime] = None
    sessions_active: int = 0


class SavingsAccountSchema(ApiModel):
    id: UUID
    balance: Money
    currency: str
    status: str
    created_at: datetime


class RepaymentSchema(ApiModel):
    id: UUID
    credit_request_id: UUID
    amount: Money
    reference_number: str
    payment_date: datetime


class CreditRequestSchema(ApiModel):
    id: UUID
    user_id: UUID
    amount: Money
    interest_rate: Money
    duration_months: int
    purpose: Optional[str] = None
    status: str
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class CreditRequestWithRepayments(CreditRequestSchema):
    repayments: List[RepaymentSchema] = []


class CreditCounts(ApiModel):
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    disbursed: int = 0
    repaid: int = 0


class UserCredit(ApiModel):
    counts: CreditCounts
    requests: List[CreditRequestWithRepayments]


class LoginActivity(ApiModel):
    created_at: datetime
    device_info: Optional[str] = None
    ip_address: Optional[str] = None
    revoked_at: Optional[datetime] = None
    expires_at: datetime


class DeviceSchema(ApiModel):
    device_info: Optional[str] = None
    ip_address: Optional[str] = None
    last_seen_at: datetime


class UserActivity(ApiModel):
    sessions_active: int
    recent_logins: List[LoginActivity]
    devices: List[DeviceSchema]


class AdminUserDetails(UserProfile):
    savings_account: Optional[SavingsAccountSchema] = None
    credit: UserCredit
    activity: UserActivity


# Credit


class RejectRequest(ApiModel):
    reason: str = Field(..., min_length=1, description="Why the request was rejected")


class RepaymentRequest(ApiModel):
    amount: Decimal = Field(..., description="Amount to repay; must not exceed the remaining balance")


class BalanceSchema(ApiModel):
    total_owed: Money
    total_repaid: Money
    remaining: Money


class CreditOwner(ApiModel):
    id: UUID
    email: str
    first_name: str
    last_name: str
    phone_number: Optional[str] = None


class CreditRequestDetails(CreditRequestWithRepayments):
    user: CreditOwner
    balance: BalanceSchema


# Analytics


class SavingsAnalyticsSchema(ApiModel):
    total_balance: Money
    total_accounts: int
    deposits_count: int
    withdrawals_count: int


class CountTotalActive(ApiModel):
    total: int
    active: int


class CreditOverview(ApiModel):
    total: int
    by_status: Dict[str, int]


class SavingsOverview(ApiModel):
    total_balance: Money


class SessionsOverview(ApiModel):
    active: int


class LoginsOverview(ApiModel):
    last24h: int


class OverviewSchema(ApiModel):
    users: CountTotalActive
    credits: CreditOverview
    savings: SavingsOverview
    sessions: SessionsOverview
    logins: LoginsOverview


# Notifications


class NotificationSchema(ApiModel):
    id: UUID
    type: str
    title: str
    message: str
    read: bool
    sent_at: datetime
