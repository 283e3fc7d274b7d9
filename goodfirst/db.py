"""Engine and session factory setup."""
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from common.logging import LoggingManager
from goodfirst.models.base import Base
# Imported for their side effect of registering tables on Base.metadata
from goodfirst.models import refresh_job, repository  # noqa: F401

logger = LoggingManager.get_logger('app.db')


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: str) -> Engine:
    """Create an engine. SQLite gets foreign keys on; in-memory SQLite shares one connection."""
    kwargs = {}
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    engine = create_engine(database_url, **kwargs)
    if is_sqlite:
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def create_session_factory(database_url: str, create_tables: bool = True) -> sessionmaker:
    """Build the session factory handed to the store, queue, processor and sweeper."""
    engine = create_db_engine(database_url)
    if create_tables:
        Base.metadata.create_all(bind=engine)
    logger.debug(f"Session factory ready for {engine.url.render_as_string(hide_password=True)}")
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
