# fanconnect/database.py
from __future__ import annotations

import logging
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from fanconnect import config

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def _sqlite_savepoints(engine: Engine) -> None:
    """
    pysqlite's own transaction handling breaks SAVEPOINT; take over BEGIN
    so begin_nested() (used by get-or-create paths) behaves.

    BEGIN IMMEDIATE takes the write lock up front. With a deferred BEGIN two
    sessions that both read before writing deadlock on the lock upgrade and
    one fails with "database is locked"; here the second one waits (up to the
    connect timeout) and then reads the first one's committed rows.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def make_engine(url: str, **kwargs) -> Engine:
    """
    Build an engine with bounded waits:
      - connect timeout (driver level) so a dead store fails fast
      - pool timeout so a saturated pool surfaces an error instead of hanging
    """
    if url.startswith("postgres://"):
        # Render/Heroku style URLs
        url = url.replace("postgres://", "postgresql://", 1)

    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": config.DB_CONNECT_TIMEOUT}
        engine = create_engine(url, connect_args=connect_args, echo=config.DB_ECHO, **kwargs)
        _sqlite_savepoints(engine)
        return engine

    connect_args = {"connect_timeout": config.DB_CONNECT_TIMEOUT}
    return create_engine(
        url,
        connect_args=connect_args,
        pool_timeout=config.DB_POOL_TIMEOUT,
        pool_pre_ping=True,
        echo=config.DB_ECHO,
        **kwargs,
    )


engine: Optional[Engine] = make_engine(config.DATABASE_URL) if config.DATABASE_URL else None
SessionLocal: Optional[sessionmaker[Session]] = (
    sessionmaker(bind=engine, autoflush=False, expire_on_commit=False) if engine is not None else None
)


def is_configured() -> bool:
    return SessionLocal is not None


def init_db() -> None:
    """Create tables if missing. Safe to call repeatedly."""
    if engine is None:
        logger.warning("DATABASE_URL not set; skipping schema creation")
        return
    # models must be imported so their tables are registered on Base.metadata
    from fanconnect import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def get_db() -> Iterator[Optional[Session]]:
    """
    FastAPI dependency.

    Yields None when the store is not configured; the service layer turns
    that into fail-closed reads and NotConfigured errors on writes.
    """
    if SessionLocal is None:
        yield None
        return

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def upsert_row(
    db: Session,
    model: type,
    values: dict,
    conflict_cols: tuple[str, ...],
    update_cols: tuple[str, ...],
):
    """
    INSERT ... ON CONFLICT (conflict_cols) DO UPDATE SET update_cols.

    Concurrent writers converge on one row, last write wins. Dialects without
    native upsert fall back to a savepoint insert + re-read on IntegrityError.
    Returns the stored ORM row (refreshed, not the identity-map copy).
    """
    from sqlalchemy import select
    from sqlalchemy.exc import IntegrityError

    key = {c: values[c] for c in conflict_cols}
    dialect = db.get_bind().dialect.name

    if dialect in ("sqlite", "postgresql"):
        if dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            from sqlalchemy.dialects.postgresql import insert

        stmt = insert(model).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(conflict_cols),
            set_={c: stmt.excluded[c] for c in update_cols},
        )
        db.execute(stmt)
    else:
        try:
            with db.begin_nested():
                db.add(model(**values))
        except IntegrityError:
            row = db.scalar(select(model).filter_by(**key))
            for c in update_cols:
                setattr(row, c, values[c])
        db.flush()

    return db.scalar(select(model).filter_by(**key).execution_options(populate_existing=True))
