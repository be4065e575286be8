"""SQLAlchemy ORM models for the admin back-office"""

import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Integer, Numeric, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class User(Base):
    """Admin or member account"""

    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password = Column(Text, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone_number = Column(String(32), nullable=True, unique=True)
    role = Column(String(20), nullable=False, default="member")
    status = Column(String(20), nullable=False, default="active", index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    savings_account = relationship("SavingsAccount", back_populates="user", uselist=False)
    credit_requests = relationship("CreditRequest", back_populates="user", order_by="CreditRequest.created_at.desc()")
    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")


class RefreshToken(Base):
    """Issued refresh token; one row per login or rotation"""

    __tablename__ = "refresh_tokens"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(255), nullable=False, unique=True)
    device_info = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    user = relationship("User", back_populates="refresh_tokens")


class RevokedAccessToken(Base):
    """Access token jti revoked by logout, kept until the token expires"""

    __tablename__ = "revoked_access_tokens"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    jti = Column(String(64), nullable=False, unique=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SavingsAccount(Base):
    __tablename__ = "savings_accounts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    balance = Column(Numeric(14, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="KES")
    status = Column(String(20), nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    user = relationship("User", back_populates="savings_account")
    transactions = relationship("SavingsTransaction", back_populates="account", cascade="all, delete-orphan")


class SavingsTransaction(Base):
    __tablename__ = "savings_transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    savings_account_id = Column(
        UUID(as_uuid=True), ForeignKey("savings_accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type = Column(String(20), nullable=False)  # "deposit" or "withdrawal"
    amount = Column(Numeric(14, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    account = relationship("SavingsAccount", back_populates="transactions")


class CreditRequest(Base):
    """Loan application moving through the approval workflow"""

    __tablename__ = "credit_requests"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    interest_rate = Column(Numeric(5, 2), nullable=False)
    duration_months = Column(Integer, nullable=False)
    purpose = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    approved_by = Column(UUID(as_uuid=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="credit_requests")
    repayments = relationship("Repayment", back_populates="credit_request", order_by="Repayment.payment_date")


class Repayment(Base):
    """Payment against an approved credit request; append-only"""

    __tablename__ = "repayments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    credit_request_id = Column(
        UUID(as_uuid=True), ForeignKey("credit_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount = Column(Numeric(14, 2), nullable=False)
    reference_number = Column(String(32), nullable=False, unique=True)
    payment_date = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    credit_request = relationship("CreditRequest", back_populates="repayments")


class Notification(Base):
    """In-app message shown in the user's inbox"""

    __tablename__ = "notifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(20), nullable=False, default="in_app")
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    sent_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class NotificationOutbox(Base):
    """Notification delivery queue with retry tracking"""

    __tablename__ = "notification_outbox"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    type = Column(String(20), nullable=False, default="in_app")
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="pending", index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
