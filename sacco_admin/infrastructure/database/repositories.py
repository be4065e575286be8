"""Data access layer - one method per query shape"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
from sqlalchemy import and_, case, func, or_
from sqlalchemy.orm import Session, selectinload
from sacco_admin.infrastructure.database.models import (
    CreditRequest,
    Notification,
    NotificationOutbox,
    RefreshToken,
    Repayment,
    RevokedAccessToken,
    SavingsAccount,
    SavingsTransaction,
    User,
)
from sacco_admin.domain.credit import CENTS
from sacco_admin.domain.models import CreditStatus, NotificationIntent, OutboxStatus

CREDIT_SORT_FIELDS = {
    "createdAt": CreditRequest.created_at,
    "amount": CreditRequest.amount,
    "interestRate": CreditRequest.interest_rate,
    "durationMonths": CreditRequest.duration_months,
    "status": CreditRequest.status,
}

USER_SORT_FIELDS = {
    "createdAt": User.created_at,
    "email": User.email,
    "firstName": User.first_name,
    "lastName": User.last_name,
    "role": User.role,
    "status": User.status,
}


def _ordering(column, order: str):
    return column.asc() if order == "asc" else column.desc()


class CreditRepository:
    """Repository for credit requests and their repayments"""

    def __init__(self, db: Session):
        self.db = db

    def list_requests(
        self,
        status: Optional[str],
        offset: int,
        limit: int,
        sort_by: str = "createdAt",
        order: str = "desc",
    ) -> List[CreditRequest]:
        query = self.db.query(CreditRequest)
        if status:
            query = query.filter(CreditRequest.status == status)
        column = CREDIT_SORT_FIELDS.get(sort_by, CreditRequest.created_at)
        return query.order_by(_ordering(column, order)).offset(offset).limit(limit).all()

    def count_requests(self, status: Optional[str] = None) -> int:
        query = self.db.query(func.count(CreditRequest.id))
        if status:
            query = query.filter(CreditRequest.status == status)
        return query.scalar() or 0

    def find_request_by_id(self, request_id: uuid.UUID) -> Optional[CreditRequest]:
        return self.db.query(CreditRequest).filter(CreditRequest.id == request_id).first()

    def find_request_with_user_and_repayments(self, request_id: uuid.UUID) -> Optional[CreditRequest]:
        return (
            self.db.query(CreditRequest)
            .options(selectinload(CreditRequest.user), selectinload(CreditRequest.repayments))
            .filter(CreditRequest.id == request_id)
            .first()
        )

    def find_request_for_repayment(self, request_id: uuid.UUID) -> Optional[CreditRequest]:
        """Load the request row locked for update (no-op on SQLite)"""
        return (
            self.db.query(CreditRequest)
            .filter(CreditRequest.id == request_id)
            .with_for_update()
            .first()
        )

    def sum_repayments(self, request_id: uuid.UUID) -> Decimal:
        total = (
            self.db.query(func.coalesce(func.sum(Repayment.amount), 0))
            .filter(Repayment.credit_request_id == request_id)
            .scalar()
        )
        return Decimal(str(total)).quantize(CENTS)

    def transition_from_pending(self, request_id: uuid.UUID, values: Dict) -> bool:
        """
        Conditional update: only applies while the row is still pending.

        Returns False when another transition got there first.
        """
        updated = (
            self.db.query(CreditRequest)
            .filter(CreditRequest.id == request_id, CreditRequest.status == CreditStatus.PENDING.value)
            .update(values, synchronize_session="fetch")
        )
        return updated == 1

    def find_repayment_by_reference(self, reference_number: str) -> Optional[Repayment]:
        return self.db.query(Repayment).filter(Repayment.reference_number == reference_number).first()

    def create_repayment(self, request_id: uuid.UUID, amount: Decimal, reference_number: str) -> Repayment:
        """Insert inside a savepoint so a unique-constraint clash leaves the outer transaction usable"""
        repayment = Repayment(
            credit_request_id=request_id,
            amount=amount,
            reference_number=reference_number,
        )
        with self.db.begin_nested():
            self.db.add(repayment)
        return repayment

    def count_by_status(self, user_id: Optional[uuid.UUID] = None) -> Dict[str, int]:
        query = self.db.query(CreditRequest.status, func.count(CreditRequest.id))
        if user_id is not None:
            query = query.filter(CreditRequest.user_id == user_id)
        counts = {status.value: 0 for status in CreditStatus}
        for status, count in query.group_by(CreditRequest.status).all():
            counts[status] = count
        return counts


class UserRepository:
    """Repository for user accounts and their login activity"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, **values) -> User:
        user = User(**values)
        self.db.add(user)
        self.db.flush()
        return user

    def find_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def find_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(func.lower(User.email) == email.lower()).first()

    def find_by_phone(self, phone_number: str) -> Optional[User]:
        return self.db.query(User).filter(User.phone_number == phone_number).first()

    def find_detailed_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        return (
            self.db.query(User)
            .options(
                selectinload(User.savings_account),
                selectinload(User.credit_requests).selectinload(CreditRequest.repayments),
            )
            .filter(User.id == user_id)
            .first()
        )

    def _filtered(self, query, role: Optional[str], status: Optional[str], email: Optional[str]):
        if role:
            query = query.filter(User.role == role)
        if status:
            query = query.filter(User.status == status)
        if email:
            query = query.filter(User.email.ilike(f"%{email}%"))
        return query

    def list(
        self,
        offset: int,
        limit: int,
        role: Optional[str] = None,
        status: Optional[str] = None,
        email: Optional[str] = None,
        sort_by: str = "createdAt",
        order: str = "desc",
    ) -> List[User]:
        query = self._filtered(self.db.query(User), role, status, email)
        column = USER_SORT_FIELDS.get(sort_by, User.created_at)
        return query.order_by(_ordering(column, order)).offset(offset).limit(limit).all()

    def count(self, role: Optional[str] = None, status: Optional[str] = None, email: Optional[str] = None) -> int:
        return self._filtered(self.db.query(func.count(User.id)), role, status, email).scalar() or 0

    def update(self, user: User, **values) -> User:
        for key, value in values.items():
            setattr(user, key, value)
        self.db.flush()
        return user

    def find_recent_logins(self, user_id: uuid.UUID, limit: int) -> List[RefreshToken]:
        return (
            self.db.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id)
            .order_by(RefreshToken.created_at.desc())
            .limit(limit)
            .all()
        )

    def count_active_sessions(self, user_id: uuid.UUID, now: datetime) -> int:
        return (
            self.db.query(func.count(RefreshToken.id))
            .filter(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked_at.is_(None),
                RefreshToken.expires_at > now,
            )
            .scalar()
            or 0
        )

    def find_last_login(self, user_id: uuid.UUID) -> Optional[datetime]:
        return (
            self.db.query(func.max(RefreshToken.created_at))
            .filter(RefreshToken.user_id == user_id)
            .scalar()
        )


class TokenRepository:
    """Repository for refresh tokens and revoked access tokens"""

    def __init__(self, db: Session):
        self.db = db

    def create_refresh_token(
        self,
        user_id: uuid.UUID,
        token: str,
        expires_at: datetime,
        device_info: Optional[str],
        ip_address: Optional[str],
    ) -> RefreshToken:
        row = RefreshToken(
            user_id=user_id,
            token=token,
            expires_at=expires_at,
            device_info=device_info,
            ip_address=ip_address,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def find_refresh_token(self, token: str) -> Optional[RefreshToken]:
        return self.db.query(RefreshToken).filter(RefreshToken.token == token).first()

    def revoke_refresh_token(self, row: RefreshToken, at: datetime) -> None:
        row.revoked_at = at
        self.db.flush()

    def revoke_access_token(self, jti: str, user_id: uuid.UUID, expires_at: datetime) -> None:
        if self.is_access_token_revoked(jti):
            return
        self.db.add(RevokedAccessToken(jti=jti, user_id=user_id, expires_at=expires_at))
        self.db.flush()

    def is_access_token_revoked(self, jti: str) -> bool:
        return self.db.query(RevokedAccessToken.id).filter(RevokedAccessToken.jti == jti).first() is not None

    def count_active_sessions(self, now: datetime) -> int:
        return (
            self.db.query(func.count(RefreshToken.id))
            .filter(RefreshToken.revoked_at.is_(None), RefreshToken.expires_at > now)
            .scalar()
            or 0
        )

    def count_logins_since(self, since: datetime) -> int:
        return self.db.query(func.count(RefreshToken.id)).filter(RefreshToken.created_at > since).scalar() or 0


class SavingsRepository:
    """Aggregates over savings accounts and their transactions"""

    def __init__(self, db: Session):
        self.db = db

    def sum_all_balances(self) -> Decimal:
        total = self.db.query(func.coalesce(func.sum(SavingsAccount.balance), 0)).scalar()
        return Decimal(str(total)).quantize(CENTS)

    def count_all_accounts(self) -> int:
        return self.db.query(func.count(SavingsAccount.id)).scalar() or 0

    def count_transactions_by_type(self, type: str) -> int:
        return (
            self.db.query(func.count(SavingsTransaction.id))
            .filter(SavingsTransaction.type == type)
            .scalar()
            or 0
        )


class NotificationRepository:
    """Repository for the notification outbox and delivered in-app notifications"""

    def __init__(self, db: Session):
        self.db = db

    def add_outbox(self, intent: NotificationIntent) -> NotificationOutbox:
        row = NotificationOutbox(
            user_id=intent.user_id,
            type=intent.type,
            title=intent.title,
            message=intent.message,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def _dispatchable(self, stale_before: datetime):
        return or_(
            NotificationOutbox.status == OutboxStatus.PENDING.value,
            and_(
                NotificationOutbox.status == OutboxStatus.SENDING.value,
                NotificationOutbox.last_attempt_at < stale_before,
            ),
        )

    def list_dispatchable_outbox_ids(self, limit: int, stale_before: datetime) -> List[uuid.UUID]:
        """Pending rows plus "sending" rows whose claim went stale"""
        rows = (
            self.db.query(NotificationOutbox.id)
            .filter(self._dispatchable(stale_before))
            .order_by(NotificationOutbox.created_at)
            .limit(limit)
            .all()
        )
        return [row.id for row in rows]

    def claim_outbox(self, outbox_id: uuid.UUID, now: datetime, stale_before: datetime) -> Optional[NotificationOutbox]:
        """
        Conditional update to "sending"; counts the attempt.

        Returns None when another dispatch pass already holds the row.
        """
        claimed = (
            self.db.query(NotificationOutbox)
            .filter(NotificationOutbox.id == outbox_id, self._dispatchable(stale_before))
            .update(
                {
                    "status": OutboxStatus.SENDING.value,
                    "attempts": NotificationOutbox.attempts + 1,
                    "last_attempt_at": now,
                },
                synchronize_session=False,
            )
        )
        if claimed != 1:
            return None
        return self.db.get(NotificationOutbox, outbox_id)

    def complete_outbox(self, outbox_id: uuid.UUID, intent: NotificationIntent) -> Optional[Notification]:
        """
        Mark the claimed row delivered and write the in-app notification.

        Returns None, writing nothing, when the claim was lost to a later pass.
        """
        released = (
            self.db.query(NotificationOutbox)
            .filter(
                NotificationOutbox.id == outbox_id,
                NotificationOutbox.status == OutboxStatus.SENDING.value,
            )
            .update(
                {"status": OutboxStatus.DELIVERED.value, "last_error": None},
                synchronize_session=False,
            )
        )
        if released != 1:
            return None
        notification = Notification(
            user_id=intent.user_id,
            type=intent.type,
            title=intent.title,
            message=intent.message,
        )
        self.db.add(notification)
        self.db.flush()
        return notification

    def fail_outbox(self, outbox_id: uuid.UUID, error: str, max_attempts: int) -> None:
        """Release the claim: back to pending, or failed once attempts are used up"""
        self.db.query(NotificationOutbox).filter(
            NotificationOutbox.id == outbox_id,
            NotificationOutbox.status == OutboxStatus.SENDING.value,
        ).update(
            {
                "last_error": error[:1000],
                "status": case(
                    (NotificationOutbox.attempts >= max_attempts, OutboxStatus.FAILED.value),
                    else_=OutboxStatus.PENDING.value,
                ),
            },
            synchronize_session=False,
        )

    def list_for_user(self, user_id: uuid.UUID, unread_only: bool, offset: int, limit: int) -> List[Notification]:
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.read.is_(False))
        return query.order_by(Notification.sent_at.desc()).offset(offset).limit(limit).all()

    def count_for_user(self, user_id: uuid.UUID, unread_only: bool) -> int:
        query = self.db.query(func.count(Notification.id)).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.read.is_(False))
        return query.scalar() or 0

    def find_for_user(self, notification_id: uuid.UUID, user_id: uuid.UUID) -> Optional[Notification]:
        return (
            self.db.query(Notification)
            .filter(Notification.id == notification_id, Notification.user_id == user_id)
            .first()
        )
