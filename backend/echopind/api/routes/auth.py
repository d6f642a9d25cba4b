from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, status

from echopind.api.dependencies import (
    get_session_manager,
    get_user_service,
    optional_auth,
    require_auth,
)
from echopind.api.schemas import (
    AuthResponse,
    AuthStatusResponse,
    Identity,
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    UserEnvelope,
    VerifyResponse,
)
from echopind.services.session_service import SessionManager, TokenPair
from echopind.services.user_service import UserService

router = APIRouter(prefix="/auth", tags=["auth"])


def _tokens(pair: TokenPair) -> dict:
    return asdict(pair)

# REST api
# -----------------------------
# Sync handlers: bcrypt and the database are blocking, FastAPI runs these in its thread pool


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    sessions: SessionManager = Depends(get_session_manager),
):
    """Register a new user and sign them in"""
    user, pair = sessions.register(
        full_name=body.full_name,
        email=body.email,
        password=body.password,
        role=body.role,
        phone=body.phone,
        school=body.school,
        grade=body.grade,
    )
    return {"message": "Registration successful", "user": user, "tokens": _tokens(pair)}


@router.post("/login", response_model=AuthResponse)
def login(
    body: LoginRequest,
    sessions: SessionManager = Depends(get_session_manager),
):
    """Exchange email and password for an access/refresh token pair"""
    user, pair = sessions.login(body.email, body.password)
    return {"message": "Login successful", "user": user, "tokens": _tokens(pair)}


@router.post("/refresh", response_model=RefreshResponse)
def refresh(
    body: Optional[RefreshRequest] = None,
    sessions: SessionManager = Depends(get_session_manager),
):
    """Rotate a refresh token: the presented one is spent, a new pair comes back"""
    # A missing body is reported the same way as a missing token
    pair = sessions.refresh(body.refresh_token if body else None)
    return {"message": "Token refreshed successfully", "tokens": _tokens(pair)}


@router.post("/logout", response_model=MessageResponse)
def logout(
    body: Optional[LogoutRequest] = None,
    identity: Identity = Depends(require_auth),
    sessions: SessionManager = Depends(get_session_manager),
):
    """Log out the device holding this refresh token"""
    sessions.logout(identity.user_id, body.refresh_token if body else None)
    return {"message": "Logout successful"}


@router.post("/logout-all", response_model=MessageResponse)
def logout_all(
    identity: Identity = Depends(require_auth),
    sessions: SessionManager = Depends(get_session_manager),
):
    """Invalidate every refresh token of the caller"""
    sessions.logout_all(identity.user_id)
    return {"message": "Logout from all devices successful"}


@router.get("/me", response_model=UserEnvelope)
def me(
    identity: Identity = Depends(require_auth),
    users: UserService = Depends(get_user_service),
):
    """Get current user information"""
    return {"user": users.get_user(identity.user_id)}


@router.get("/verify", response_model=VerifyResponse)
def verify(identity: Identity = Depends(require_auth)):
    """Check that the presented access token is still good"""
    return {"valid": True, "user": identity}


@router.get("/status", response_model=AuthStatusResponse)
def auth_status(identity: Optional[Identity] = Depends(optional_auth)):
    """Report who is calling without requiring a token"""
    return {"authenticated": identity is not None, "user": identity}
