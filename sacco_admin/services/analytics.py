"""Read-only aggregates for the savings page and the dashboard overview"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict
from sacco_admin.domain.models import CreditStatus, UserStatus
from sacco_admin.infrastructure.database.repositories import (
    CreditRepository,
    SavingsRepository,
    TokenRepository,
    UserRepository,
)
from sacco_admin.utils.date_utils import hours_ago, utcnow


@dataclass
class SavingsAnalytics:
    total_balance: Decimal
    total_accounts: int
    deposits_count: int
    withdrawals_count: int


@dataclass
class Overview:
    users_total: int
    users_active: int
    credits_total: int
    credits_by_status: Dict[str, int]
    savings_total_balance: Decimal
    sessions_active: int
    logins_last_24h: int


class SavingsService:
    def __init__(self, repo: SavingsRepository):
        self.repo = repo

    def get_analytics(self) -> SavingsAnalytics:
        return SavingsAnalytics(
            total_balance=self.repo.sum_all_balances(),
            total_accounts=self.repo.count_all_accounts(),
            deposits_count=self.repo.count_transactions_by_type("deposit"),
            withdrawals_count=self.repo.count_transactions_by_type("withdrawal"),
        )


class AnalyticsService:
    """Dashboard headline numbers"""

    def __init__(
        self,
        users: UserRepository,
        credits: CreditRepository,
        savings: SavingsRepository,
        tokens: TokenRepository,
    ):
        self.users = users
        self.credits = credits
        self.savings = savings
        self.tokens = tokens

    def get_overview(self) -> Overview:
        now = utcnow()
        by_status = self.credits.count_by_status()
        return Overview(
            users_total=self.users.count(),
            users_active=self.users.count(status=UserStatus.ACTIVE.value),
            credits_total=sum(by_status.values()),
            credits_by_status={
                status: by_status[status]
                for status in (
                    CreditStatus.PENDING.value,
                    CreditStatus.APPROVED.value,
                    CreditStatus.REJECTED.value,
                    CreditStatus.REPAID.value,
                )
            },
            savings_total_balance=self.savings.sum_all_balances(),
            sessions_active=self.tokens.count_active_sessions(now),
            logins_last_24h=self.tokens.count_logins_since(hours_ago(24, now)),
        )
