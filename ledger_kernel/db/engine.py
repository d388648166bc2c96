"""
Module: ledger_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management
    and transactional scope utilities.  Single point of database connection
    configuration for the whole system.
Architecture position: Kernel > DB.  May import from db/base.py and
    db/immutability.py.  MUST NOT
    import from services/, selectors/ or outer packages (create_tables
    imports models/ lazily so Base.metadata is populated).

Invariants enforced:
    - PostgreSQL sessions run at READ COMMITTED.  Stronger guarantees come
      from explicit row locks (SELECT ... FOR UPDATE) on inventory layers
      and sequence counters.
    - SQLite is supported for tests and local tooling.  It runs on a single
      shared connection with explicit BEGIN so SAVEPOINT works under
      pysqlite.  SQLite has no row locks; concurrency guarantees are only
      claimed for PostgreSQL.
    - Every engine built here installs the append-only listeners, so
      journals, lines and movements are immutable outside tests too.
    - session_scope() commits on success and rolls back on any exception.
      Services never commit; this is where the unit of work ends.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory is called
      before init_engine_from_url().
    - Connection pool exhaustion if pool_size + max_overflow is exceeded.
"""

import atexit
from contextlib import contextmanager
from typing import TYPE_CHECKING, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from ledger_kernel.db.immutability import register_immutability_listeners
from ledger_kernel.logging_config import configure_logging, get_logger

if TYPE_CHECKING:
    from ledger_config.schema import DatabaseConfig

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _install_sqlite_transaction_handling(engine: Engine) -> None:
    """
    Let SQLAlchemy, not pysqlite, emit BEGIN.

    pysqlite defers BEGIN until the first DML statement, which breaks
    SAVEPOINT.  This is the documented SQLAlchemy recipe.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Initialize the SQLAlchemy engine from a database URL.

    A second call replaces the first engine; call reset_engine() in
    between to dispose its connections.

    Args:
        database_url: postgresql://... for production, sqlite://... for tests.
        echo: If True, log all SQL statements.
        pool_size: Number of connections to keep in the pool (PostgreSQL).
        max_overflow: Max connections beyond pool_size (PostgreSQL).
        pool_pre_ping: Test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    dialect = make_url(database_url).get_backend_name()

    if dialect == "sqlite":
        _engine = create_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        _install_sqlite_transaction_handling(_engine)
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    register_immutability_listeners()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "pool_size": pool_size if dialect != "sqlite" else 1,
            "echo": echo,
        },
    )

    return _engine


def init_engine_from_config(config: "DatabaseConfig") -> Engine:
    """Initialize the engine from the ``database`` section of CoreConfig."""
    return init_engine_from_url(
        config.url,
        echo=config.echo,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
    )


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """
    Get a new session instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory.

    Multi-threaded callers create one session per thread from it.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Commits on normal exit.  On exception the session is rolled back, the
    failure is logged and the exception re-raised unchanged.

    Usage:
        with session_scope() as session:
            JournalService(session).post_journal(...)
    """
    session = get_session()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """
    Create all tables defined by the ledger models.

    Safe to call repeatedly; existing tables are left untouched.
    """
    from ledger_kernel.db.base import Base
    import ledger_kernel.models  # noqa: F401  (registers all tables)

    Base.metadata.create_all(get_engine())
    logger.info(
        "tables_created",
        extra={"table_count": len(Base.metadata.sorted_tables)},
    )


def drop_tables() -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    from ledger_kernel.db.base import Base
    import ledger_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory. Used by tests."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    """Release pooled connections on process exit."""
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)


def is_postgres() -> bool:
    """Check if the current engine is PostgreSQL."""
    if _engine is None:
        return False
    return _engine.dialect.name == "postgresql"
