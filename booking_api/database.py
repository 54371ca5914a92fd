from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import settings

Base = declarative_base()


def build_engine(database_url: str) -> Engine:
    """Create an engine for ``database_url``.

    Booking writes check occupancy and then insert, so two writers for the
    same schedule must not interleave. Server databases get that from
    ``SELECT ... FOR UPDATE`` on the customer row. SQLite ignores FOR UPDATE,
    so for SQLite every transaction is opened with ``BEGIN IMMEDIATE``, which
    takes the database write lock up front and makes concurrent writers wait
    for the busy timeout instead of reading stale occupancy.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)

    engine = create_engine(
        database_url,
        connect_args={
            "check_same_thread": False,
            "timeout": settings.sqlite_busy_timeout,
        },
    )

    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, _):
        # hand transaction control to SQLAlchemy, see the "begin" hook below
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


engine = build_engine(settings.resolved_database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Dependency for DB session
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
