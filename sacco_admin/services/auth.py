"""Authentication: password login, JWT access tokens, rotating refresh tokens"""

import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
import jwt
from werkzeug.security import check_password_hash, generate_password_hash
from sacco_admin.config import settings
from sacco_admin.domain.exceptions import UnauthorizedError
from sacco_admin.domain.models import ClientContext, Principal, TokenPair, UserStatus
from sacco_admin.infrastructure.database.models import User
from sacco_admin.infrastructure.database.repositories import TokenRepository, UserRepository
from sacco_admin.infrastructure.observability.metrics import login_counter
from sacco_admin.utils.date_utils import is_expired, utcnow

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"


def hash_password(raw: str) -> str:
    return generate_password_hash(raw)


def verify_password(raw: str, hashed: str) -> bool:
    return check_password_hash(hashed or "", raw)


class TokenCodec:
    """Encodes and decodes HS256 access tokens"""

    def __init__(
        self,
        secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        ttl_minutes: Optional[int] = None,
    ):
        self.secret = secret or settings.jwt_secret
        self.algorithm = algorithm or settings.jwt_algorithm
        self.ttl = timedelta(minutes=ttl_minutes or settings.access_token_ttl_minutes)

    def encode(self, user: User, now: Optional[datetime] = None) -> str:
        now = now or utcnow()
        payload = {
            "sub": str(user.id),
            "role": user.role,
            "jti": uuid.uuid4().hex,
            "iat": int(now.timestamp()),
            "exp": int((now + self.ttl).timestamp()),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode(self, token: str) -> Principal:
        try:
            data = jwt.decode(token, self.secret, algorithms=[self.algorithm])
            return Principal(
                user_id=uuid.UUID(data["sub"]),
                role=data.get("role", ""),
                jti=data["jti"],
                expires_at=datetime.fromtimestamp(data["exp"], tz=timezone.utc),
            )
        except jwt.ExpiredSignatureError as e:
            raise UnauthorizedError("Token expired") from e
        except (jwt.InvalidTokenError, KeyError, ValueError) as e:
            raise UnauthorizedError("Invalid token") from e


class AuthService:
    """Login, refresh-token rotation, logout and bearer-token verification"""

    def __init__(
        self,
        users: UserRepository,
        tokens: TokenRepository,
        codec: Optional[TokenCodec] = None,
        refresh_ttl_days: Optional[int] = None,
    ):
        self.users = users
        self.tokens = tokens
        self.codec = codec or TokenCodec()
        self.refresh_ttl = timedelta(days=refresh_ttl_days or settings.refresh_token_ttl_days)

    def login(
        self,
        email: str,
        password: str,
        context: ClientContext,
        required_role: Optional[str] = None,
    ) -> Tuple[TokenPair, User]:
        user = self.users.find_by_email(email)
        if not user or not verify_password(password, user.password):
            login_counter.labels(outcome="failure").inc()
            raise UnauthorizedError(INVALID_CREDENTIALS)

        if required_role and user.role != required_role:
            login_counter.labels(outcome="failure").inc()
            raise UnauthorizedError(INVALID_CREDENTIALS)

        if user.status != UserStatus.ACTIVE.value:
            login_counter.labels(outcome="failure").inc()
            raise UnauthorizedError("Account is not active")

        pair = self._issue(user, context)
        login_counter.labels(outcome="success").inc()
        logger.info("Login succeeded", extra={"user_id": str(user.id), "ip_address": context.ip_address})
        return pair, user

    def refresh(self, refresh_token: str, context: ClientContext) -> Tuple[TokenPair, User]:
        """Rotate: the presented token is revoked and a fresh pair issued"""
        row = self.tokens.find_refresh_token(refresh_token)
        if not row or row.revoked_at is not None or is_expired(row.expires_at):
            raise UnauthorizedError("Invalid refresh token")

        user = self.users.find_by_id(row.user_id)
        if not user or user.status != UserStatus.ACTIVE.value:
            raise UnauthorizedError("Invalid refresh token")

        self.tokens.revoke_refresh_token(row, utcnow())
        return self._issue(user, context), user

    def logout(self, refresh_token: str, principal: Principal) -> None:
        row = self.tokens.find_refresh_token(refresh_token)
        if not row or row.user_id != principal.user_id:
            raise UnauthorizedError("Invalid refresh token")

        if row.revoked_at is None:
            self.tokens.revoke_refresh_token(row, utcnow())
        self.tokens.revoke_access_token(principal.jti, principal.user_id, principal.expires_at)

    def authenticate(self, access_token: str) -> Principal:
        principal = self.codec.decode(access_token)
        if self.tokens.is_access_token_revoked(principal.jti):
            raise UnauthorizedError("Token has been revoked")
        # Suspension or deletion takes effect before the access token expires
        user = self.users.find_by_id(principal.user_id)
        if not user or user.status != UserStatus.ACTIVE.value:
            raise UnauthorizedError("Account is not active")
        return principal

    def _issue(self, user: User, context: ClientContext) -> TokenPair:
        refresh_token = secrets.token_urlsafe(48)
        self.tokens.create_refresh_token(
            user_id=user.id,
            token=refresh_token,
            expires_at=utcnow() + self.refresh_ttl,
            device_info=context.device_info,
            ip_address=context.ip_address,
        )
        return TokenPair(access_token=self.codec.encode(user), refresh_token=refresh_token)
