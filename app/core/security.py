# ============================================================================
# Authentication & Security
# ============================================================================
import asyncio
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Union

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.config import Settings
from app.core.exceptions import UnauthorizedError

logger = logging.getLogger(__name__)

ONE_TIME_TOKEN_BYTES = 32


def generate_one_time_token() -> str:
    """Random hex secret for email verification and password reset links."""
    return secrets.token_hex(ONE_TIME_TOKEN_BYTES)


class PasswordHasher:
    """bcrypt hashing, run in a worker thread so the event loop stays free."""

    def __init__(self, rounds: int = 12):
        self.pwd_context = CryptContext(
            schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds
        )

    async def hash(self, password: str) -> str:
        return await asyncio.to_thread(self.pwd_context.hash, password)

    async def verify(self, password: str, hashed_password: Optional[str]) -> bool:
        if not hashed_password:
            return False
        try:
            return await asyncio.to_thread(self.pwd_context.verify, password, hashed_password)
        except ValueError:
            logger.warning("Stored password hash is not a recognised bcrypt hash")
            return False


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str


class TokenService:
    """Issues and verifies the access/refresh JWT pair."""

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_expires: timedelta,
        refresh_expires: timedelta,
        algorithm: str = "HS256",
    ):
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.access_expires = access_expires
        self.refresh_expires = refresh_expires
        self.algorithm = algorithm

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            access_secret=settings.JWT_SECRET_KEY,
            refresh_secret=settings.REFRESH_SECRET_KEY,
            access_expires=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_expires=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            algorithm=settings.JWT_ALGORITHM,
        )

    def _encode(self, user_id: str, token_type: TokenType, now: datetime) -> str:
        if token_type is TokenType.ACCESS:
            secret, lifetime = self.access_secret, self.access_expires
        else:
            secret, lifetime = self.refresh_secret, self.refresh_expires
        payload = {
            "sub": user_id,
            "type": token_type.value,
            "iat": now,
            "exp": now + lifetime,
        }
        return jwt.encode(payload, secret, algorithm=self.algorithm)

    def generate_tokens(self, user_id: Union[str, uuid.UUID]) -> TokenPair:
        now = datetime.now(timezone.utc)
        subject = str(user_id)
        return TokenPair(
            access_token=self._encode(subject, TokenType.ACCESS, now),
            refresh_token=self._encode(subject, TokenType.REFRESH, now),
        )

    def _decode(self, token: str, token_type: TokenType) -> str:
        secret = self.access_secret if token_type is TokenType.ACCESS else self.refresh_secret
        try:
            payload = jwt.decode(token, secret, algorithms=[self.algorithm])
        except JWTError as e:
            # Expired, bad signature and malformed all look the same to callers
            logger.debug(f"Rejected {token_type.value} token: {e}")
            raise UnauthorizedError("Invalid token")

        user_id = payload.get("sub")
        if not user_id or payload.get("type") != token_type.value:
            raise UnauthorizedError("Invalid token")
        return user_id

    def decode_access_token(self, token: str) -> str:
        """Return the user id carried by a valid access token."""
        return self._decode(token, TokenType.ACCESS)

    def decode_refresh_token(self, token: str) -> str:
        """Return the user id carried by a valid refresh token."""
        return self._decode(token, TokenType.REFRESH)
