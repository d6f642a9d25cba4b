from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from echopind.core.config import Settings
from echopind.core.database import Base, build_engine, build_session_factory
from echopind.core.security import PasswordHasher, TokenService
from echopind.main import create_app
from echopind.models.user import UserRole
from echopind.services.session_service import SessionManager

API = "/api"
DEFAULT_PASSWORD = "secret1"


@pytest.fixture
def settings() -> Settings:
    # bcrypt's minimum cost keeps the suite fast; production default is 12
    return Settings(
        DATABASE_URL="sqlite://",
        JWT_SECRET="test-access-secret",
        JWT_REFRESH_SECRET="test-refresh-secret",
        BCRYPT_ROUNDS=4,
        TOKEN_PURGE_INTERVAL_HOURS=0,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def engine(settings):
    # StaticPool keeps one in-memory database alive across sessions and threads
    engine = build_engine(settings.DATABASE_URL, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def hasher(settings) -> PasswordHasher:
    return PasswordHasher(rounds=settings.BCRYPT_ROUNDS)


@pytest.fixture
def tokens(settings) -> TokenService:
    return TokenService(settings)


@pytest.fixture
def sessions(db, settings, tokens, hasher) -> SessionManager:
    return SessionManager(db, settings, tokens, hasher)


@pytest.fixture
def app(settings, engine):
    return create_app(settings, engine=engine)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


def auth_header(access_token: str) -> dict:
    return {"Authorization": f"Bearer {access_token}"}


def fake_user(user_id: str = "user-1", role: UserRole = UserRole.STUDENT):
    return SimpleNamespace(id=user_id, email=f"{user_id}@x.com", role=role, full_name="Test User")


@pytest.fixture
def register_user(client):
    """Register through the API and return the JSON body"""

    def _register(email: str, password: str = DEFAULT_PASSWORD, role: str = "student",
                  full_name: str = "Test User", **extra) -> dict:
        response = client.post(
            f"{API}/auth/register",
            json={"fullName": full_name, "email": email, "password": password, "role": role, **extra},
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _register


@pytest.fixture
def login_user(client):

    def _login(email: str, password: str = DEFAULT_PASSWORD) -> dict:
        response = client.post(f"{API}/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return response.json()

    return _login
