"""Engine and session-factory helpers for the persistent store."""

import logging
from typing import Optional

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import settings
from .models import Base

logger = logging.getLogger(__name__)


def create_db_engine(url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """Create an engine for ``url`` (defaults to settings.database_url).

    In-memory SQLite shares one connection so every session sees the same data.
    """
    url = url or settings.database_url
    echo = settings.database_echo if echo is None else echo
    kwargs = {"echo": echo}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    logger.debug("Database engine: %s", engine.url.render_as_string(hide_password=True))
    return engine


def init_db(engine: Engine) -> None:
    """Create all tables that don't exist yet."""
    Base.metadata.create_all(engine)


def create_session_factory(engine: Optional[Engine] = None, create_tables: bool = True) -> sessionmaker:
    """Build the store handle injected into the SessionManager."""
    engine = engine or create_db_engine()
    if create_tables:
        init_db(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)
