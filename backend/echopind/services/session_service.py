"""
Session lifecycle: registration, login, refresh-token rotation, logout and
account deletion.

Refresh tokens are single use. Redeeming one removes it from the user's list
and records its replacement in the same transaction, so a stolen token stops
working as soon as the legitimate client refreshes.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from echopind.core.config import Settings
from echopind.core.errors import (
    AccountDeactivated,
    DuplicateResource,
    InvalidCredentials,
    InvalidPassword,
    InvalidRefreshToken,
    InvalidToken,
    NotFound,
    TokenExpired,
    ValidationFailed,
)
from echopind.core.security import PasswordHasher, TokenService
from echopind.models.user import User, UserRole
from echopind.services.user_store import DUPLICATE_EMAIL_MESSAGE, UserStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int  # access token lifetime in seconds


class SessionManager:
    def __init__(
        self,
        db: Session,
        settings: Settings,
        tokens: TokenService,
        hasher: PasswordHasher,
    ) -> None:
        self.settings = settings
        self.tokens = tokens
        self.hasher = hasher
        self.store = UserStore(
            db,
            max_refresh_tokens=settings.MAX_REFRESH_TOKENS,
            refresh_token_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        )

    def _issue_pair(self, user: User) -> TokenPair:
        return TokenPair(
            access_token=self.tokens.create_access_token(user),
            refresh_token=self.tokens.create_refresh_token(user.id),
            expires_in=self.settings.access_token_ttl_seconds,
        )

    def register(
        self,
        full_name: str,
        email: str,
        password: str,
        role: UserRole = UserRole.STUDENT,
        **profile,
    ) -> Tuple[User, TokenPair]:
        """Create a user and sign them in. The user row and first refresh token commit together."""
        if self.store.email_taken(email):
            raise DuplicateResource(DUPLICATE_EMAIL_MESSAGE)

        # Hash before touching the store; a hashing failure aborts the registration
        hashed_password = self.hasher.hash(password)
        user = self.store.create_user(
            full_name=full_name,
            email=email,
            hashed_password=hashed_password,
            role=role,
            **profile,
        )
        pair = self._issue_pair(user)
        self.store.add_refresh_token(user, pair.refresh_token, record_login=True)

        logger.info(f"Registered user {user.id} with role {user.role.value}")
        return user, pair

    def login(self, email: str, password: str) -> Tuple[User, TokenPair]:
        user = self.store.get_by_email(email)
        if user is None:
            # Spend the same time as a real check so unknown emails are not detectable
            self.hasher.dummy_verify()
            logger.warning("Login failed: unknown email")
            raise InvalidCredentials()

        if not self.hasher.verify(password, user.hashed_password):
            logger.warning(f"Login failed: bad password for user {user.id}")
            raise InvalidCredentials()

        if not user.is_active:
            logger.warning(f"Login refused for deactivated user {user.id}")
            raise AccountDeactivated()

        # New device session, may evict the oldest one past the cap
        pair = self._issue_pair(user)
        self.store.add_refresh_token(user, pair.refresh_token, record_login=True)

        logger.info(f"User {user.id} logged in")
        return user, pair

    def refresh(self, refresh_token: Optional[str]) -> TokenPair:
        """Redeem a refresh token for a new access token and a replacement refresh token."""
        if not refresh_token:
            raise InvalidRefreshToken("Refresh token is required")

        try:
            payload = self.tokens.decode_refresh_token(refresh_token)
        except TokenExpired:
            raise InvalidRefreshToken("Refresh token expired")
        except InvalidToken:
            raise InvalidRefreshToken()

        # The signature alone is not enough: the token must still be on the user's list
        user = self.store.find_user_by_refresh_token(refresh_token)
        if user is None or user.id != payload["userId"] or not user.is_active:
            logger.warning(f"Refresh rejected for user {payload['userId']}")
            raise InvalidRefreshToken()

        # Mint the replacement first, then swap it in atomically
        pair = self._issue_pair(user)
        if not self.store.rotate_refresh_token(user, refresh_token, pair.refresh_token):
            # Lost a race with another refresh of the same token
            logger.warning(f"Refresh token for user {user.id} was already redeemed")
            raise InvalidRefreshToken()

        logger.info(f"Rotated refresh token for user {user.id}")
        return pair

    def logout(self, user_id: str, refresh_token: Optional[str]) -> None:
        if not refresh_token:
            raise ValidationFailed("Refresh token is required")
        self.store.remove_refresh_token(user_id, refresh_token)
        logger.info(f"User {user_id} logged out")

    def logout_all(self, user_id: str) -> None:
        self.store.clear_refresh_tokens(user_id)
        logger.info(f"User {user_id} logged out from all devices")

    def delete_account(self, user_id: str, password: Optional[str]) -> None:
        if not password:
            raise ValidationFailed("Password is required to delete account")

        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFound()
        if not self.hasher.verify(password, user.hashed_password):
            raise InvalidPassword()

        self.store.delete_user(user)
        logger.info(f"Deleted account {user_id}")
