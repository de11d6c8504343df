from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from marketplace.config import settings

Base = declarative_base()

WRITE_OPTION = "sqlite_begin_immediate"


def make_engine(url: str, echo: bool = False):
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo, pool_pre_ping=True)

    engine = create_engine(
        url,
        echo=echo,
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    # pysqlite emits its own BEGIN lazily; take over so writers can ask for
    # the write lock before they read stock. WAL keeps readers off that lock.
    @event.listens_for(engine, "connect")
    def _configure_sqlite(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")
        dbapi_connection.execute("PRAGMA journal_mode=WAL")

    @event.listens_for(engine, "begin")
    def _begin(conn):
        if conn.get_execution_options().get(WRITE_OPTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")

    return engine


def begin_write(db: Session):
    """Start the session's transaction as a writer.

    On SQLite this takes the database write lock up front, so concurrent
    writers queue instead of reading the same stock. Other backends ignore
    the option and rely on row locks. A transaction that is already open is
    left as it is.
    """
    if not db.in_transaction():
        db.connection(execution_options={WRITE_OPTION: True})


engine = make_engine(settings.database_url, echo=settings.sql_echo)
SessionLocal = sessionmaker(bind=engine, autoflush=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
