import logging
import math
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from echopind.core.errors import DuplicateResource, NotFound
from echopind.models.user import User, UserRole
from echopind.services.user_store import UserStore

logger = logging.getLogger(__name__)

# Fields a user may change on their own profile; role and is_active are not among them
PROFILE_FIELDS = (
    "full_name",
    "email",
    "phone",
    "address",
    "date_of_birth",
    "student_id",
    "school",
    "grade",
    "profile_photo",
)
# Required columns, an explicit null leaves them unchanged
NON_NULLABLE_FIELDS = {"full_name", "email"}


class UserService:
    """Profile reads/updates for the owner, listing and activation for admins"""

    def __init__(self, db: Session) -> None:
        self.store = UserStore(db)

    def get_user(self, user_id: str) -> User:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFound()
        return user

    def update_profile(self, user_id: str, changes: Dict[str, Any]) -> User:
        user = self.get_user(user_id)

        updates = {
            field: value for field, value in changes.items()
            if field in PROFILE_FIELDS
            and not (value is None and field in NON_NULLABLE_FIELDS)
        }
        new_email = updates.get("email")
        if new_email is not None and self.store.email_taken(new_email, exclude_id=user.id):
            raise DuplicateResource("Email already exists")

        self.store.update_profile(user, updates)
        logger.info(f"Updated profile for user {user.id}: {sorted(updates)}")
        return user

    def list_users(
        self,
        page: int = 1,
        limit: int = 10,
        role: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        role_filter = None
        if role:
            try:
                role_filter = UserRole(role)
            except ValueError:
                # Unknown role filters are ignored rather than rejected
                role_filter = None

        users, total = self.store.list_users(page=page, limit=limit, role=role_filter, search=search)
        total_pages = math.ceil(total / limit) if total else 0
        return {
            "users": users,
            "pagination": {
                "current_page": page,
                "total_pages": total_pages,
                "total_users": total,
                "has_next": page < total_pages,
                "has_prev": page > 1,
            },
        }

    def set_status(self, user_id: str, is_active: bool) -> User:
        user = self.get_user(user_id)
        self.store.set_active(user, is_active)
        logger.info(f"User {user.id} {'activated' if is_active else 'deactivated'}")
        return user

