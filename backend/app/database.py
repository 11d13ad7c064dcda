from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.config import Settings


def build_engine(settings: Settings) -> Engine:
    """Create the engine backing the relationship graph and conversation store."""

    if settings.database_url.startswith("sqlite"):
        return create_engine(
            settings.database_url,
            echo=settings.debug,
            future=True,
            connect_args={"check_same_thread": False},
        )

    # pool_pre_ping: verify connections before using them
    return create_engine(
        settings.database_url,
        echo=settings.debug,
        future=True,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
    )


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return the session factory handed to the durable services.

    Services open short-lived transactions with ``factory.begin()`` so a
    failing statement rolls back every row touched by the same operation.
    """

    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)
