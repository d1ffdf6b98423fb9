"""Store handle: SQLAlchemy engine, declarative base and transaction scope.

A ``Store`` is built once by the process entry point and handed to every
component that touches the database. Components never commit on their own;
they receive the ``Session`` of the transaction they participate in.
"""

from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

logger = structlog.get_logger(__name__)

_IN_MEMORY_URIS = ("sqlite://", "sqlite:///:memory:")


class Base(DeclarativeBase):
    pass


def _load_models() -> None:
    """Import every module that declares tables so the metadata is complete."""
    import catalogue.models  # noqa: F401
    import identity.models  # noqa: F401
    import ordering.cart.cart  # noqa: F401
    import ordering.order.order  # noqa: F401


def _serialize_sqlite_writers(engine: Engine) -> None:
    """Make every SQLite transaction take the write lock up front.

    pysqlite's own BEGIN handling is switched off and each transaction opens
    with ``BEGIN IMMEDIATE``, so concurrent writers queue on the database
    lock instead of interleaving reads and writes.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # noqa: ARG001
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_uri: str, echo: bool = False) -> Engine:
    if database_uri.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False, "timeout": 15}}
        if database_uri in _IN_MEMORY_URIS:
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_uri, echo=echo, **kwargs)
        _serialize_sqlite_writers(engine)
        return engine

    return create_engine(database_uri, echo=echo, pool_pre_ping=True)


class Store:
    """Explicitly constructed handle on the relational store."""

    def __init__(self, database_uri: str, echo: bool = False) -> None:
        _load_models()
        self.database_uri = database_uri
        self.engine = build_engine(database_uri, echo=echo)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Run a unit of work: commit on success, roll back on any exception."""
        session = self._session_factory()
        try:
            with session.begin():
                yield session
        finally:
            session.close()

    def create_schema(self) -> None:
        """Create all tables."""
        Base.metadata.create_all(self.engine)
        logger.info("schema_created", database=self.engine.url.render_as_string(hide_password=True))

    def drop_schema(self) -> None:
        """Drop all tables."""
        Base.metadata.drop_all(self.engine)
        logger.info("schema_dropped", database=self.engine.url.render_as_string(hide_password=True))

    def dispose(self) -> None:
        self.engine.dispose()
