from __future__ import annotations

import time
from typing import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.config import settings


class DatabaseUnavailableError(RuntimeError):
    """The database could not be reached; requests should answer 503."""


RETRY_DELAYS_SECONDS = (0.2, 0.5, 1.0)

# Lower-cased fragments of driver messages that mean "network, try again".
# Constraint and SQL errors never match these.
_TRANSIENT_MARKERS = (
    "getaddrinfo failed",
    "could not translate host name",
    "name or service not known",
    "connection refused",
    "connection reset",
    "server closed the connection unexpectedly",
    "timeout",
    "timed out",
)


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    cur: BaseException | None = exc
    while cur is not None and id(cur) not in seen:
        seen.add(id(cur))
        yield cur
        cur = cur.__cause__ or cur.__context__


def is_transient_db_connectivity_error(exc: BaseException) -> bool:
    text_ = " | ".join(str(e).lower() for e in _exception_chain(exc))
    return any(marker in text_ for marker in _TRANSIENT_MARKERS)


def _psycopg2_url(url: str) -> str:
    for prefix in ("postgresql+psycopg://", "postgresql://", "postgres://"):
        if url.startswith(prefix):
            return "postgresql+psycopg2://" + url.removeprefix(prefix)
    return url


def _build_engine(raw_url: str) -> Engine:
    url = _psycopg2_url(raw_url.strip())
    parsed = make_url(url)

    if parsed.get_backend_name() == "sqlite":
        kwargs: dict[str, object] = {"connect_args": {"check_same_thread": False}}
        if parsed.database in (None, "", ":memory:"):
            # One shared connection, otherwise every session sees an empty database.
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)

    connect_args: dict[str, object] = {"connect_timeout": 3}
    host = (parsed.host or "").lower()
    if host.endswith("supabase.com") and "sslmode" not in parsed.query:
        connect_args["sslmode"] = "require"
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


ENGINE = _build_engine(settings.database_url)
SessionLocal = sessionmaker(bind=ENGINE, autoflush=False, autocommit=False, expire_on_commit=False)


@event.listens_for(ENGINE, "connect")
def _sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    # Block sections cascade on group delete; sqlite ignores that without the pragma.
    if ENGINE.dialect.name != "sqlite":
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def ping() -> bool:
    """True when a SELECT 1 round trip succeeds."""

    try:
        with ENGINE.connect() as conn:
            conn.execute(text("SELECT 1"))
    except OperationalError:
        return False
    return True


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding a session whose connection has been checked.

    Transient connect failures are retried with short backoff before giving up
    with DatabaseUnavailableError. Errors raised by the endpoint itself are not
    touched.
    """

    last_exc: OperationalError | None = None
    for delay in (*RETRY_DELAYS_SECONDS, None):
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        except OperationalError as exc:
            db.close()
            last_exc = exc
            if delay is None or not is_transient_db_connectivity_error(exc):
                break
            time.sleep(delay)
            continue

        try:
            yield db
        finally:
            db.close()
        return

    raise DatabaseUnavailableError("Database temporarily unavailable") from last_exc
