from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .errors import StorageUnavailable

# execution option marking a session that will write
WRITE_INTENT = "chronostamp_write_intent"


class Base(DeclarativeBase):
    pass


def build_engine(url: str, timeout: float = 5.0) -> Engine:
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": timeout},
        )
        _sqlite_write_intent_transactions(engine)
        return engine

    return create_engine(
        url,
        pool_pre_ping=True,
        pool_timeout=timeout,
        connect_args={"connect_timeout": int(max(timeout, 1))},
    )


def _sqlite_write_intent_transactions(engine: Engine) -> None:
    # pysqlite defers BEGIN until the first write. A session that reads and then
    # writes must hold the write lock from the start, or two of them deadlock on
    # the lock upgrade. Read-only sessions keep a plain deferred BEGIN.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        if conn.get_execution_options().get(WRITE_INTENT):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def write_session(session_factory: sessionmaker) -> Session:
    """Open a session whose first transaction is taken as a writer."""
    db = session_factory()
    try:
        db.connection(execution_options={WRITE_INTENT: True})
    except (OperationalError, PoolTimeoutError) as e:
        db.close()
        raise StorageUnavailable() from e
    return db
