import psycopg
import pytest

from crossref.core.config import DatabaseConfig
from crossref.core.database import connection_manager
from crossref.core.database.connection_manager import ConnectionManager
from crossref.core.exceptions import DatabaseConnectionError


class FakeConnection:
    closed = False

    def close(self):
        self.closed = True


def test_connect_retries_with_backoff(monkeypatch):
    attempts = []
    sleeps = []

    def flaky_connect(url, **kwargs):
        attempts.append(url)
        if len(attempts) < 3:
            raise psycopg.OperationalError("server starting up")
        return FakeConnection()

    monkeypatch.setattr(connection_manager.psycopg, "connect", flaky_connect)

    manager = ConnectionManager(DatabaseConfig(database_url="postgresql://db/news", max_retries=3),
                                sleep=sleeps.append)

    assert len(attempts) == 3
    assert sleeps == [2.0, 4.0]
    manager.close()
    assert manager.connection.closed


def test_connect_gives_up_after_max_retries(monkeypatch):
    def refuse(url, **kwargs):
        raise psycopg.OperationalError("connection refused")

    monkeypatch.setattr(connection_manager.psycopg, "connect", refuse)
    sleeps = []

    with pytest.raises(DatabaseConnectionError) as excinfo:
        ConnectionManager(DatabaseConfig(database_url="postgresql://db/news", max_retries=2), sleep=sleeps.append)

    assert sleeps == [2.0]
    assert "connection refused" in excinfo.value.context["original_error"]
