import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError
from passlib.context import CryptContext

from echopind.core.config import Settings
from echopind.core.errors import InternalError, InvalidToken, TokenExpired, ValidationFailed

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

# bcrypt reads only the first 72 bytes of its input, longer passwords are refused rather than truncated
MAX_PASSWORD_BYTES = 72


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


class PasswordHasher:
    """Salted one-way password hashing backed by passlib's bcrypt scheme.

    The bcrypt hash string embeds its own salt and cost, so verification
    only needs the stored hash.
    """

    def __init__(self, rounds: int = 12) -> None:
        self._context = CryptContext(
            schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    def hash(self, password: str) -> str:
        if password_too_long(password):
            raise ValidationFailed(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        try:
            return self._context.hash(password)
        except Exception as exc:
            # Never fall through to storing anything derived from the plaintext
            logger.exception("Password hashing failed")
            raise InternalError("Password hashing failed") from exc

    def verify(self, password: str, hashed_password: str | None) -> bool:
        """Constant-time check of a plaintext password against a stored hash"""
        if not hashed_password or password_too_long(password):
            return False
        try:
            return self._context.verify(password, hashed_password)
        except ValueError:
            # Unrecognized or corrupted hash
            logger.warning("Stored password hash could not be identified")
            return False

    def dummy_verify(self) -> None:
        """Burn the same time as a real verify when there is no user to check"""
        self._context.dummy_verify()


def issue_token(payload: dict[str, Any], secret: str, ttl: timedelta, algorithm: str = "HS256") -> str:
    """Sign payload with secret, adding iat/exp claims"""
    now = datetime.now(timezone.utc)
    to_encode = payload.copy()
    to_encode.update({"iat": now, "exp": now + ttl})
    return jwt.encode(to_encode, secret, algorithm=algorithm)


def verify_token(token: str, secret: str, algorithm: str = "HS256") -> dict[str, Any]:
    """
    Decode and verify a signed token.

    Raises TokenExpired when the signature is good but exp has passed, and
    InvalidToken for anything else (bad signature, wrong secret, garbage).
    """
    try:
        return jwt.decode(token, secret, algorithms=[algorithm])
    except ExpiredSignatureError as exc:
        raise TokenExpired() from exc
    except JWTError as exc:
        raise InvalidToken() from exc


class TokenService:
    """Issues and verifies the two token classes with their own secrets and lifetimes."""

    def __init__(self, settings: Settings) -> None:
        self._algorithm = settings.JWT_ALGORITHM
        self._access_secret = settings.JWT_SECRET
        self._refresh_secret = settings.JWT_REFRESH_SECRET
        self.access_ttl = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self.refresh_ttl = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

    def create_access_token(self, user, ttl: timedelta | None = None) -> str:
        payload = {
            "userId": user.id,
            "email": user.email,
            "role": user.role.value,
            "fullName": user.full_name,
            "type": ACCESS_TOKEN_TYPE,
        }
        return issue_token(payload, self._access_secret, ttl or self.access_ttl, self._algorithm)

    def create_refresh_token(self, user_id: str, ttl: timedelta | None = None) -> str:
        # jti keeps two tokens minted in the same second distinct
        payload = {"userId": user_id, "type": REFRESH_TOKEN_TYPE, "jti": uuid.uuid4().hex}
        return issue_token(payload, self._refresh_secret, ttl or self.refresh_ttl, self._algorithm)

    def decode_access_token(self, token: str) -> dict[str, Any]:
        payload = verify_token(token, self._access_secret, self._algorithm)
        if payload.get("type") != ACCESS_TOKEN_TYPE or not payload.get("userId"):
            raise InvalidToken()
        return payload

    def decode_refresh_token(self, token: str) -> dict[str, Any]:
        payload = verify_token(token, self._refresh_secret, self._algorithm)
        if payload.get("type") != REFRESH_TOKEN_TYPE or not payload.get("userId"):
            raise InvalidToken()
        return payload
