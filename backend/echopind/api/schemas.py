from datetime import date, datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, StrictBool, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from echopind.core.security import MAX_PASSWORD_BYTES, password_too_long
from echopind.models.user import UserRole


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire (both accepted on input)"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _clean_full_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not 2 <= len(value) <= 50:
        raise ValueError("Full name must be between 2 and 50 characters")
    return value


def _normalize_email(value: Optional[str]) -> Optional[str]:
    return value.lower() if value is not None else value


def _check_password_size(value: str) -> str:
    if password_too_long(value):
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


# Requests
# -----------------------------

class RegisterRequest(CamelModel):
    full_name: str
    email: EmailStr
    password: str = Field(min_length=6)
    # Older clients send the role as userType
    role: UserRole = Field(UserRole.STUDENT, validation_alias=AliasChoices("role", "userType"))
    phone: Optional[str] = None
    school: Optional[str] = None
    grade: Optional[str] = None

    @field_validator("full_name")
    @classmethod
    def clean_full_name(cls, value):
        return _clean_full_name(value)

    @field_validator("password")
    @classmethod
    def check_password_size(cls, value):
        return _check_password_size(value)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value):
        return _normalize_email(value)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value):
        return _normalize_email(value)


class RefreshRequest(CamelModel):
    refresh_token: Optional[str] = None


class LogoutRequest(CamelModel):
    refresh_token: Optional[str] = None


class ProfileUpdate(CamelModel):
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    date_of_birth: Optional[date] = None
    student_id: Optional[str] = None
    school: Optional[str] = None
    grade: Optional[str] = None
    profile_photo: Optional[str] = None

    @field_validator("full_name")
    @classmethod
    def clean_full_name(cls, value):
        return _clean_full_name(value)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value):
        return _normalize_email(value)


class StatusUpdate(CamelModel):
    is_active: StrictBool


class DeleteAccountRequest(CamelModel):
    password: Optional[str] = None


# Responses
# -----------------------------

class UserResponse(CamelModel):
    id: str
    full_name: str
    email: str
    role: UserRole
    phone: Optional[str] = None
    address: Optional[str] = None
    date_of_birth: Optional[date] = None
    student_id: Optional[str] = None
    school: Optional[str] = None
    grade: Optional[str] = None
    profile_photo: Optional[str] = None
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_serializer("last_login", "created_at", "updated_at")
    def serialize_timestamps(self, value: Optional[datetime], _info):
        return value.isoformat() if value else None


class Identity(CamelModel):
    """The authenticated caller, attached to a request by the auth dependencies"""

    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str
    role: UserRole
    full_name: str
    is_active: bool

    @classmethod
    def from_user(cls, user) -> "Identity":
        return cls(
            user_id=user.id,
            email=user.email,
            role=user.role,
            full_name=user.full_name,
            is_active=user.is_active,
        )


class TokenResponse(CamelModel):
    access_token: str
    refresh_token: str
    expires_in: int


class AuthResponse(CamelModel):
    message: str
    user: UserResponse
    tokens: TokenResponse


class RefreshResponse(CamelModel):
    message: str
    tokens: TokenResponse


class MessageResponse(CamelModel):
    message: str


class UserEnvelope(CamelModel):
    message: Optional[str] = None
    user: UserResponse


class VerifyResponse(CamelModel):
    valid: bool
    user: Identity


class AuthStatusResponse(CamelModel):
    authenticated: bool
    user: Optional[Identity] = None


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_users: int
    has_next: bool
    has_prev: bool


class UserListResponse(CamelModel):
    users: List[UserResponse]
    pagination: Pagination
