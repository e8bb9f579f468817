from __future__ import annotations

from sqlalchemy.exc import OperationalError

from core.database import is_transient_db_connectivity_error, ping


def _operational(message: str) -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception(message))


def test_network_failures_are_transient():
    assert is_transient_db_connectivity_error(_operational("could not translate host name \"db\" to address"))
    assert is_transient_db_connectivity_error(_operational("Connection refused"))
    assert is_transient_db_connectivity_error(_operational("connection timed out"))


def test_cause_chain_is_searched():
    try:
        try:
            raise ConnectionError("server closed the connection unexpectedly")
        except ConnectionError as inner:
            raise RuntimeError("query failed") from inner
    except RuntimeError as exc:
        assert is_transient_db_connectivity_error(exc)


def test_sql_errors_are_not_transient():
    assert not is_transient_db_connectivity_error(_operational("no such table: block_sections"))
    assert not is_transient_db_connectivity_error(ValueError("duplicate key"))


def test_ping_against_test_database():
    assert ping() is True
