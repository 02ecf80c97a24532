# FILE: medstore/db/session.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from medstore.core.config import settings


def _install_sqlite_hooks(eng: Engine) -> None:
    """
    SQLite: we emit BEGIN ourselves (pysqlite defers it) and take the write
    lock up front, so SAVEPOINT works and writers queue on the busy timeout.
    """

    @event.listens_for(eng, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(eng, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(db_uri: str, **kwargs) -> Engine:
    if db_uri.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", settings.SQLITE_BUSY_TIMEOUT)
        eng = create_engine(db_uri, connect_args=connect_args, future=True, **kwargs)
        _install_sqlite_hooks(eng)
        return eng

    return create_engine(
        db_uri,
        pool_pre_ping=True,
        pool_recycle=280,
        pool_size=kwargs.pop("pool_size", 10),
        max_overflow=kwargs.pop("max_overflow", 20),
        future=True,
        **kwargs,
    )


def build_session_factory(eng: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=eng,
        future=True,
    )


engine: Engine = build_engine(settings.SQLALCHEMY_DATABASE_URI)
SessionLocal = build_session_factory(engine)


@contextmanager
def session_scope(factory: sessionmaker | None = None) -> Iterator[Session]:
    """
    One unit of work: commit on success, roll back on any exception.
    """
    db = (factory or SessionLocal)()
    try:
        with db.begin():
            yield db
    finally:
        db.close()
