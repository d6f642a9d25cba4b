"""Create the demo accounts. Existing users are removed first."""

import logging

from echopind.core.config import Settings
from echopind.core.database import Base, build_engine, build_session_factory
from echopind.core.security import PasswordHasher
from echopind.models.user import RefreshToken, User, UserRole
from echopind.services.user_store import UserStore

logger = logging.getLogger(__name__)

DEMO_USERS = [
    {
        "full_name": "Test Student",
        "email": "test@echopind.com",
        "password": "test123",
        "role": UserRole.STUDENT,
        "school": "EchoPind Academy",
        "grade": "Grade 10",
        "phone": "123-456-7890",
    },
    {
        "full_name": "Demo Student",
        "email": "demo@echopind.com",
        "password": "eco123",
        "role": UserRole.STUDENT,
        "school": "Green Valley School",
        "grade": "Grade 12",
        "phone": "123-456-7891",
    },
    {
        "full_name": "Prof. Green",
        "email": "teacher@echopind.com",
        "password": "teach123",
        "role": UserRole.TEACHER,
        "school": "EchoPind Academy",
        "phone": "123-456-7892",
    },
    {
        "full_name": "Admin User",
        "email": "admin@echopind.com",
        "password": "admin123",
        "role": UserRole.ADMIN,
        "phone": "123-456-7893",
    },
]


def seed(settings: Settings) -> None:
    engine = build_engine(settings.DATABASE_URL)
    Base.metadata.create_all(bind=engine)
    hasher = PasswordHasher(rounds=settings.BCRYPT_ROUNDS)

    db = build_session_factory(engine)()
    try:
        db.query(RefreshToken).delete()
        db.query(User).delete()
        store = UserStore(db)
        for entry in DEMO_USERS:
            fields = dict(entry)
            password = fields.pop("password")
            user = store.create_user(hashed_password=hasher.hash(password), **fields)
            logger.info(f"Created user: {user.email}")
        db.commit()
    finally:
        db.close()
        engine.dispose()

    logger.info("Database seeded successfully")
    for entry in DEMO_USERS:
        logger.info(f"  {entry['role'].value}: {entry['email']} / {entry['password']}")


if __name__ == "__main__":
    settings = Settings()
    logging.basicConfig(level=settings.LOG_LEVEL)
    seed(settings)
