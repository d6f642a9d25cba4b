from datetime import timedelta
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from echopind.core.errors import DuplicateResource
from echopind.models.user import RefreshToken, User, UserRole, utcnow

DUPLICATE_EMAIL_MESSAGE = "User with this email already exists"


def normalize_email(email: str) -> str:
    return email.strip().lower()


def like_pattern(term: str) -> str:
    """Substring LIKE pattern with the wildcard characters in term matched literally"""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class UserStore:
    """
    Persistence for users and their refresh tokens.

    Refresh-token rows whose expires_at has passed are treated as absent by
    every read, whether or not the purge job has removed them yet. Every
    mutation of a user's token list locks the user row first and commits
    once, so the evict/append and remove/append steps land together.
    """

    def __init__(
        self,
        db: Session,
        max_refresh_tokens: int = 5,
        refresh_token_ttl: timedelta = timedelta(days=7),
    ) -> None:
        self.db = db
        self.max_refresh_tokens = max_refresh_tokens
        self.refresh_token_ttl = refresh_token_ttl

    # Users
    # -----------------------------

    def get_by_id(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(
            User.email == normalize_email(email)
        ).first()

    def email_taken(self, email: str, exclude_id: Optional[str] = None) -> bool:
        query = self.db.query(User.id).filter(User.email == normalize_email(email))
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        return query.first() is not None

    def create_user(
        self,
        full_name: str,
        email: str,
        hashed_password: str,
        role: UserRole = UserRole.STUDENT,
        **profile,
    ) -> User:
        """Stage a new user and flush it. The caller commits."""
        if not hashed_password:
            raise ValueError("hashed_password must be non-empty")
        user = User(
            full_name=full_name,
            email=normalize_email(email),
            hashed_password=hashed_password,
            role=role,
            **profile,
        )
        self.db.add(user)
        try:
            self.db.flush()
        except IntegrityError:
            # Two registrations for the same email raced past the explicit check
            self.db.rollback()
            raise DuplicateResource(DUPLICATE_EMAIL_MESSAGE)
        return user

    def update_profile(self, user: User, changes: dict) -> User:
        if "email" in changes:
            changes["email"] = normalize_email(changes["email"])
        for field, value in changes.items():
            setattr(user, field, value)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateResource("Email already exists")
        return user

    def set_active(self, user: User, is_active: bool) -> User:
        """Flip the active flag. Deactivation drops every refresh token in the same transaction."""
        self._lock_user(user.id)
        user.is_active = is_active
        if not is_active:
            self._delete_tokens(RefreshToken.user_id == user.id)
        self.db.commit()
        return user

    def delete_user(self, user: User) -> None:
        self._delete_tokens(RefreshToken.user_id == user.id)
        # The bulk delete bypassed the session, forget the stale collection before cascading
        self.db.expire(user, ["refresh_tokens"])
        self.db.delete(user)
        self.db.commit()

    def list_users(
        self,
        page: int = 1,
        limit: int = 10,
        role: Optional[UserRole] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[User], int]:
        query = self.db.query(User)
        if role is not None:
            query = query.filter(User.role == role)
        if search:
            # Case-insensitive substring match on name, email or school
            pattern = like_pattern(search)
            query = query.filter(or_(
                User.full_name.ilike(pattern, escape="\\"),
                User.email.ilike(pattern, escape="\\"),
                User.school.ilike(pattern, escape="\\"),
            ))
        total = query.count()
        users = (
            query.order_by(User.created_at.desc(), User.id)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return users, total

    # Refresh tokens
    # -----------------------------

    def active_refresh_tokens(self, user_id: str) -> List[RefreshToken]:
        return (
            self.db.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id, RefreshToken.expires_at > utcnow())
            .order_by(RefreshToken.id)
            .all()
        )

    def find_user_by_refresh_token(self, token: str) -> Optional[User]:
        return (
            self.db.query(User)
            .join(RefreshToken, RefreshToken.user_id == User.id)
            .filter(RefreshToken.token == token, RefreshToken.expires_at > utcnow())
            .first()
        )

    def add_refresh_token(self, user: User, token: str, record_login: bool = False) -> None:
        """Record a newly issued refresh token, evicting the oldest beyond the cap."""
        self._lock_user(user.id)
        self._append_token(user.id, token)
        if record_login:
            user.last_login = utcnow()
        self.db.commit()

    def rotate_refresh_token(self, user: User, old_token: str, new_token: str) -> bool:
        """
        Replace old_token with new_token in one transaction.

        Returns False (and changes nothing) when old_token is no longer
        active, e.g. because a concurrent refresh already redeemed it.
        """
        self._lock_user(user.id)
        # Conditional delete: only the request that actually removes the row may
        # append a replacement, a concurrent redeemer sees rowcount 0
        removed = self._delete_tokens(
            RefreshToken.user_id == user.id,
            RefreshToken.token == old_token,
            RefreshToken.expires_at > utcnow(),
        )
        if not removed:
            self.db.rollback()
            return False
        self._append_token(user.id, new_token)
        self.db.commit()
        return True

    def remove_refresh_token(self, user_id: str, token: str) -> None:
        self._lock_user(user_id)
        self._delete_tokens(RefreshToken.user_id == user_id, RefreshToken.token == token)
        self.db.commit()

    def clear_refresh_tokens(self, user_id: str) -> None:
        self._lock_user(user_id)
        self._delete_tokens(RefreshToken.user_id == user_id)
        self.db.commit()

    def purge_expired_refresh_tokens(self) -> int:
        deleted = self._delete_tokens(RefreshToken.expires_at <= utcnow())
        self.db.commit()
        return deleted

    def _lock_user(self, user_id: str) -> None:
        # SELECT ... FOR UPDATE serializes token-list writers per user; SQLite ignores it
        self.db.query(User.id).filter(User.id == user_id).with_for_update().first()

    def _delete_tokens(self, *criteria) -> int:
        return self.db.query(RefreshToken).filter(*criteria).delete(synchronize_session=False)

    def _append_token(self, user_id: str, token: str) -> None:
        now = utcnow()
        # Expired rows never count toward the cap, drop them first
        self._delete_tokens(RefreshToken.user_id == user_id, RefreshToken.expires_at <= now)

        # Ids ascend with issue order, so the head of the list is the oldest

        active_ids = [
            token_id for (token_id,) in self.db.query(RefreshToken.id)
            .filter(RefreshToken.user_id == user_id)
            .order_by(RefreshToken.id)
            .all()
        ]
        # Leave room for the token being added
        overflow = len(active_ids) - self.max_refresh_tokens + 1
        if overflow > 0:
            self._delete_tokens(RefreshToken.id.in_(active_ids[:overflow]))

        self.db.add(RefreshToken(
            user_id=user_id,
            token=token,
            created_at=now,
            expires_at=now + self.refresh_token_ttl,
        ))
        self.db.flush()
