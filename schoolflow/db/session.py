"""Engine and session factory construction.

The engine is created once by the application (see ``schoolflow.api.main``)
and handed to the request store; nothing in the package holds a global
connection pool.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from schoolflow.core.config import Settings, get_settings


def build_engine(database_url: str | None = None, *, echo: bool | None = None) -> Engine:
    """Create an engine for the configured database."""
    settings: Settings = get_settings()
    url = database_url or settings.database_url
    connect_args = {}
    if url.startswith("sqlite"):
        # SQLite connections are handed between threads by the server
        connect_args["check_same_thread"] = False

    engine = create_engine(
        url,
        echo=settings.database_echo if echo is None else echo,
        pool_pre_ping=not url.startswith("sqlite"),
        connect_args=connect_args,
    )

    if url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def build_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to ``engine``; sessions do not expire on commit."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
