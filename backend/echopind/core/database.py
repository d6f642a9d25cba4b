from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Base class for all database models
Base = declarative_base()


def build_engine(database_url: str, **kwargs) -> Engine:
    """Create the engine for the credential store.

    SQLite needs check_same_thread disabled because FastAPI runs sync
    endpoints in a thread pool.
    """
    if database_url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        kwargs["connect_args"] = connect_args
    return create_engine(database_url, **kwargs)


def build_session_factory(engine: Engine) -> sessionmaker:
    # autocommit=False: changes require an explicit commit
    # expire_on_commit=False: rows stay readable after commit for response models
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db(request: Request):
    """
    Dependency for getting a database session.

    Each request gets its own session from the factory the app was built
    with. The session is closed after the request completes.
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
