from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker

from booking_api.core.config import settings


def configure_sqlite(engine: Engine) -> Engine:
    """Let pysqlite honour SAVEPOINT and foreign keys (used by tests and local dev)."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def build_engine(url: str, **kwargs) -> Engine:
    backend = make_url(url).get_backend_name()
    connect_args = kwargs.pop("connect_args", {})
    if backend.startswith("postgresql"):
        connect_args["options"] = "-c timezone=utc"
    elif backend == "sqlite":
        connect_args.setdefault("check_same_thread", False)

    engine = create_engine(url, pool_pre_ping=True, connect_args=connect_args, **kwargs)
    if backend == "sqlite":
        configure_sqlite(engine)
    return engine


engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
