import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine

from echopind.api.error_handlers import register_exception_handlers
from echopind.api.routes import auth, users
from echopind.core.config import Settings
from echopind.core.database import Base, build_engine, build_session_factory
from echopind.core.scheduler import start_scheduler, stop_scheduler
from echopind.core.security import PasswordHasher, TokenService
# Registers the tables on Base.metadata
from echopind.models import user as user_models  # noqa: F401

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, engine: Optional[Engine] = None) -> FastAPI:
    """
    Build the API.

    Settings are read once here and handed to every component through
    app.state; nothing downstream reads the environment.
    """
    settings = settings or Settings()
    settings.validate_runtime()
    logging.basicConfig(level=settings.LOG_LEVEL)

    engine = engine or build_engine(settings.DATABASE_URL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup: create tables if missing, start the purge scheduler
        Shutdown: stop the scheduler
        """
        # In production, use migrations instead of create_all
        Base.metadata.create_all(bind=engine)
        scheduler = start_scheduler(app.state.session_factory, settings.TOKEN_PURGE_INTERVAL_HOURS)
        yield
        stop_scheduler(scheduler)

    app = FastAPI(
        title="EchoPind API",
        description="Accounts and sessions for the EchoPind environmental learning platform",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.token_service = TokenService(settings)
    app.state.password_hasher = PasswordHasher(rounds=settings.BCRYPT_ROUNDS)

    # CORS middleware - allows the React frontend to call the API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(auth.router, prefix=settings.API_PREFIX)
    app.include_router(users.router, prefix=settings.API_PREFIX)

    @app.get("/")
    async def root():
        """Root endpoint - API information"""
        return {"message": "EchoPind API", "version": "1.0.0"}

    @app.get("/health")
    async def health():
        """Health check endpoint - used by monitoring/deployment tools"""
        return {"status": "healthy"}

    return app


app = create_app()
