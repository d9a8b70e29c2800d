from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from typing import Generator
import redis
import logging

from .config import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str, timeout_ms: int) -> Engine:
    """Create an engine whose statements give up after ``timeout_ms``."""
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": timeout_ms / 1000}
    elif database_url.startswith("postgresql"):
        connect_args = {"options": f"-c statement_timeout={timeout_ms}"}
    else:
        connect_args = {}

    new_engine = create_engine(
        database_url, connect_args=connect_args, pool_pre_ping=True
    )

    if database_url.startswith("sqlite"):

        @event.listens_for(new_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


# SQLAlchemy setup
engine = build_engine(settings.database_url, settings.store_timeout_ms)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# Redis setup (optional)
redis_client = None
if settings.redis_enabled:
    try:
        redis_client = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=settings.store_timeout_ms / 1000,
            socket_connect_timeout=settings.store_timeout_ms / 1000,
        )
        redis_client.ping()  # Test connection
        logger.info("✅ Redis connected successfully")
    except Exception as e:
        logger.warning(f"⚠️ Redis not available: {e}")
        redis_client = None


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_redis():
    """Get Redis client (optional)."""
    return redis_client


def create_tables(bind: Engine = None):
    """Create all database tables."""
    from . import models  # noqa: F401  (registers the mappers)

    Base.metadata.create_all(bind=bind or engine)
    logger.info("✅ Database tables created")
