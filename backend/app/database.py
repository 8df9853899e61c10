from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.config import Settings


def create_db_engine(settings: Settings) -> Engine:
    """Build the SQLAlchemy engine for the configured database.

    SQLite URLs skip the pool sizing options, which only apply to queued pools.
    """

    url = settings.database_url
    if url.startswith("sqlite"):
        return create_engine(
            url,
            echo=settings.debug,
            future=True,
            connect_args={"check_same_thread": False},
        )

    # pool_pre_ping: verify connections before using them
    return create_engine(
        url,
        echo=settings.debug,
        future=True,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
    )


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, future=True)
