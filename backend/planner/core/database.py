from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker

from planner.core.config import settings


def enable_sqlite_savepoints(engine_obj: Engine) -> Engine:
    """
    Let SQLAlchemy own BEGIN on pysqlite so nested transactions (SAVEPOINT) work.

    Rotation runs each product inside its own savepoint.
    """

    @event.listens_for(engine_obj, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine_obj, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine_obj


def build_engine(database_url: str, **kwargs) -> Engine:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        return enable_sqlite_savepoints(create_engine(url, future=True, **kwargs))
    return create_engine(url, future=True, **kwargs)


# SQLAlchemy engine
engine = build_engine(settings.DATABASE_URL)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    future=True,
)
