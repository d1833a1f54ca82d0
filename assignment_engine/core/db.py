import math
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Drivers that understand a ``connect_timeout`` connect argument, in seconds.
_CONNECT_TIMEOUT_DIALECTS = ("postgresql", "mysql", "mariadb")


def engine_options(database_url: str, timeout: Optional[float] = None) -> Dict[str, Any]:
    """
    Keyword arguments for ``create_engine``.

    SQLite needs ``check_same_thread`` disabled because requests are served
    from a thread pool, and an in-memory database must share one connection
    or every session would see an empty database. With ``timeout`` set, a
    connection that cannot be obtained or opened in time raises instead of
    blocking the caller.
    """
    if database_url.startswith("sqlite"):
        connect_args: Dict[str, Any] = {"check_same_thread": False}
        if timeout is not None:
            connect_args["timeout"] = timeout
        options: Dict[str, Any] = {"connect_args": connect_args}
        if ":memory:" in database_url or database_url == "sqlite://":
            options["poolclass"] = StaticPool
        return options

    options = {"pool_pre_ping": True}
    if timeout is not None:
        options["pool_timeout"] = timeout
        if database_url.startswith(_CONNECT_TIMEOUT_DIALECTS):
            options["connect_args"] = {"connect_timeout": max(1, math.ceil(timeout))}
    return options


def build_engine(database_url: str, timeout: Optional[float] = None) -> Engine:
    """Creates the SQLAlchemy engine for the catalog and exposure ledger."""
    return create_engine(database_url, **engine_options(database_url, timeout))


def build_session_factory(engine: Engine) -> sessionmaker:
    # Each unit of work gets its own session from this factory.
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db(request: Request):
    """
    Dependency that yields a database session for a single request,
    and ensures the session is closed afterward.
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
