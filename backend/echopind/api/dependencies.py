import logging
from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from echopind.api.schemas import Identity
from echopind.core.config import Settings
from echopind.core.database import get_db
from echopind.core.errors import Forbidden, InternalError, NoToken, Unauthenticated, UserNotFound
from echopind.core.security import PasswordHasher, TokenService
from echopind.models.user import User, UserRole
from echopind.services.session_service import SessionManager
from echopind.services.user_service import UserService

logger = logging.getLogger(__name__)

# Extracts the token from "Authorization: Bearer <token>"
# auto_error=False so a missing header becomes our own 401 body instead of FastAPI's 403
bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_password_hasher(request: Request) -> PasswordHasher:
    return request.app.state.password_hasher


def get_session_manager(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    tokens: TokenService = Depends(get_token_service),
    hasher: PasswordHasher = Depends(get_password_hasher),
) -> SessionManager:
    return SessionManager(db, settings, tokens, hasher)


def get_user_service(db: Session = Depends(get_db)) -> UserService:
    return UserService(db)


def resolve_identity(token: str, tokens: TokenService, db: Session) -> Identity:
    """
    Verify an access token and re-resolve its user.

    The live lookup is what makes deactivation take effect before the access
    token's own expiry.
    """
    # Raises InvalidToken / TokenExpired
    payload = tokens.decode_access_token(token)

    try:
        user = db.query(User).filter(User.id == payload["userId"]).first()
    except SQLAlchemyError as exc:
        logger.exception("User lookup failed during authentication")
        raise InternalError("Authentication failed") from exc

    if user is None or not user.is_active:
        raise UserNotFound()
    return Identity.from_user(user)


def require_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_token_service),
    db: Session = Depends(get_db),
) -> Identity:
    """Authenticated caller or 401"""
    if credentials is None:
        raise NoToken()
    return resolve_identity(credentials.credentials, tokens, db)


def optional_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_token_service),
    db: Session = Depends(get_db),
) -> Optional[Identity]:
    """
    Authenticated caller or None.

    Authentication failures fall back to anonymous; internal errors still
    propagate as 500 so a broken store is not mistaken for a logged-out user.
    """
    if credentials is None:
        return None
    try:
        return resolve_identity(credentials.credentials, tokens, db)
    except Unauthenticated:
        return None


def check_role(identity: Optional[Identity], allowed: frozenset) -> Identity:
    if identity is None:
        raise Unauthenticated()
    if identity.role not in allowed:
        raise Forbidden()
    return identity


def require_roles(*roles: UserRole) -> Callable[..., Identity]:
    """
    Build a dependency that lets through only the given roles.

    Roles must be UserRole members; a plain string fails here at import time
    instead of silently never matching.
    """
    if not roles:
        raise ValueError("require_roles needs at least one role")
    for role in roles:
        if not isinstance(role, UserRole):
            raise TypeError(f"require_roles expects UserRole members, got {role!r}")
    allowed = frozenset(roles)

    def role_gate(identity: Identity = Depends(require_auth)) -> Identity:
        return check_role(identity, allowed)

    return role_gate


require_admin = require_roles(UserRole.ADMIN)
