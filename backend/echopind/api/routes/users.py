from typing import Optional

from fastapi import APIRouter, Depends, Query

from echopind.api.dependencies import get_session_manager, get_user_service, require_admin, require_auth
from echopind.api.schemas import (
    DeleteAccountRequest,
    Identity,
    MessageResponse,
    ProfileUpdate,
    StatusUpdate,
    UserEnvelope,
    UserListResponse,
)
from echopind.services.session_service import SessionManager
from echopind.services.user_service import UserService

router = APIRouter(prefix="/user", tags=["user"])

MAX_PAGE = 1_000_000


@router.get("/profile", response_model=UserEnvelope)
def get_profile(
    identity: Identity = Depends(require_auth),
    users: UserService = Depends(get_user_service),
):
    """Get the caller's profile"""
    return {"user": users.get_user(identity.user_id)}


@router.put("/profile", response_model=UserEnvelope)
def update_profile(
    body: ProfileUpdate,
    identity: Identity = Depends(require_auth),
    users: UserService = Depends(get_user_service),
):
    """Update the caller's profile fields. Role and status are not editable here."""
    # Only fields the client actually sent are applied
    user = users.update_profile(identity.user_id, body.model_dump(exclude_unset=True))
    return {"message": "Profile updated successfully", "user": user}


@router.get("/all", response_model=UserListResponse)
def list_users(
    # Bounded so the row offset stays within a 64-bit integer
    page: int = Query(1, ge=1, le=MAX_PAGE),
    limit: int = Query(10, ge=1, le=100),
    role: Optional[str] = None,
    user_type: Optional[str] = Query(None, alias="userType"),
    search: Optional[str] = None,
    _admin: Identity = Depends(require_admin),
    users: UserService = Depends(get_user_service),
):
    """List users, newest first (admin only)"""
    return users.list_users(page=page, limit=limit, role=role or user_type, search=search)


@router.put("/{user_id}/status", response_model=UserEnvelope)
def update_user_status(
    user_id: str,
    body: StatusUpdate,
    _admin: Identity = Depends(require_admin),
    users: UserService = Depends(get_user_service),
):
    """Activate or deactivate a user (admin only). Deactivation ends all their sessions."""
    user = users.set_status(user_id, body.is_active)
    state = "activated" if body.is_active else "deactivated"
    return {"message": f"User {state} successfully", "user": user}


@router.delete("/account", response_model=MessageResponse)
def delete_account(
    body: Optional[DeleteAccountRequest] = None,
    identity: Identity = Depends(require_auth),
    sessions: SessionManager = Depends(get_session_manager),
):
    """Permanently delete the caller's account after re-checking their password"""
    sessions.delete_account(identity.user_id, body.password if body else None)
    return {"message": "Account deleted successfully"}
