"""Database engine, session factory and session scopes."""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generator, Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from workforce_sync.config.settings import Settings, get_settings
from workforce_sync.models.base import Base


@dataclass
class DatabaseConfig:
    """Connection parameters, taken from the application settings."""

    url: str
    pool_size: int = 5
    max_overflow: int = 10
    echo: bool = False

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "DatabaseConfig":
        settings = settings or get_settings()
        return cls(
            url=settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            echo=settings.debug,
        )

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker[Session]] = None


def enable_sqlite_savepoints(engine: Engine) -> None:
    """
    Let SQLAlchemy own transaction boundaries on pysqlite connections.

    The reconciler runs every row in a SAVEPOINT; pysqlite's implicit
    transaction handling breaks nested transactions unless BEGIN is
    emitted explicitly.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine_for_url(url: str, echo: bool = False, **pool_options) -> Engine:
    """
    Build an engine for ``url``.

    SQLite (local runs and tests) gets a single shared connection with
    savepoint support; any other backend gets a pre-pinged pool.
    """
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        enable_sqlite_savepoints(engine)
        return engine
    return create_engine(url, echo=echo, pool_pre_ping=True, **pool_options)


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    # Services return ORM objects after committing, so keep them loaded
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_engine(config: Optional[DatabaseConfig] = None) -> Engine:
    """Process-wide engine, created on first use."""
    global _engine
    if _engine is None:
        config = config or DatabaseConfig.from_settings()
        pool_options = {} if config.is_sqlite else {
            "pool_size": config.pool_size,
            "max_overflow": config.max_overflow,
        }
        _engine = create_engine_for_url(config.url, echo=config.echo, **pool_options)
    return _engine


def get_session_factory(config: Optional[DatabaseConfig] = None) -> sessionmaker[Session]:
    global _session_factory
    if _session_factory is None:
        _session_factory = build_session_factory(get_engine(config))
    return _session_factory


@contextmanager
def session_scope(factory: Optional[sessionmaker[Session]] = None) -> Iterator[Session]:
    """One unit of work: commit when the block succeeds, roll back when it raises."""
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a request-scoped session."""
    with session_scope() as session:
        yield session


def get_db_context():
    """Session scope for Celery jobs and scripts running outside a request."""
    return session_scope()


def init_db(config: Optional[DatabaseConfig] = None) -> None:
    """
    Create every table directly from the models.

    Meant for SQLite development databases; PostgreSQL deployments are
    migrated with Alembic.
    """
    import workforce_sync.models  # noqa: F401  (registers every table)

    Base.metadata.create_all(bind=get_engine(config))


def dispose_engine() -> None:
    """Close the pool and forget the engine and session factory."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
