"""
Unit Tests for the PostgreSQL Session
=====================================

Runs PostgresSession over a mock psycopg2 connection, so error mapping,
the block deadline and the catalog queries are covered without a server.
"""

import threading
import time
from types import SimpleNamespace
from unittest.mock import MagicMock

import psycopg2
import pytest
from psycopg2 import errors as pg_errors

from tutorial_verifier.db.postgres import PostgresSession
from tutorial_verifier.engine import ExecutionEngine
from tutorial_verifier.errors import BlockTimeoutError, ConfigurationError, ExecutionError
from tutorial_verifier.extractor import extract_blocks
from tutorial_verifier.linker import link_blocks
from tutorial_verifier.models import ErrorPolicy, ExecutionStatus, ObjectKind, SqlObject


class UndefinedTable(pg_errors.UndefinedTable):
    """Server error as psycopg2 raises it, with SQLSTATE and message filled in."""

    pgcode = "42P01"
    pgerror = 'ERROR:  relation "nowhere" does not exist'


@pytest.fixture
def connection(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    connection = MagicMock(name="connection")
    connection.closed = 0
    monkeypatch.setattr(psycopg2, "connect", lambda dsn, connect_timeout: connection)
    return connection


@pytest.fixture
def cursor(connection: MagicMock) -> MagicMock:
    return connection.cursor.return_value.__enter__.return_value


@pytest.fixture
def session(connection: MagicMock) -> PostgresSession:
    return PostgresSession("postgresql://localhost/tutorial")


class TestConnect:
    """Tests for opening the session."""

    def test_autocommit(self, session: PostgresSession, connection: MagicMock) -> None:
        assert connection.autocommit is True

    def test_connect_failure_is_configuration_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def refuse(dsn, connect_timeout):
            raise psycopg2.OperationalError("could not connect to server")

        monkeypatch.setattr(psycopg2, "connect", refuse)

        with pytest.raises(ConfigurationError, match="could not connect"):
            PostgresSession("postgresql://localhost/tutorial")


class TestExecute:
    """Tests for running a block."""

    def test_rows_and_columns(self, session: PostgresSession, cursor: MagicMock) -> None:
        cursor.description = [SimpleNamespace(name="gid"), SimpleNamespace(name="name")]
        cursor.fetchall.return_value = [[1, "Ward 3"]]

        output = session.execute("SELECT gid, name FROM precincts", 5.0)

        cursor.execute.assert_called_once_with("SELECT gid, name FROM precincts")
        assert output.columns == ["gid", "name"]
        assert output.rows == [(1, "Ward 3")]

    def test_statement_without_result_set(self, session: PostgresSession, cursor: MagicMock) -> None:
        cursor.description = None

        output = session.execute("CREATE INDEX idx ON parcels USING gist (geom)", 5.0)

        assert output.columns == []
        assert output.rows == []

    def test_database_error_carries_sqlstate(self, session: PostgresSession, cursor: MagicMock) -> None:
        cursor.execute.side_effect = UndefinedTable()

        with pytest.raises(ExecutionError) as exc_info:
            session.execute("SELECT * FROM nowhere", 5.0)

        assert not isinstance(exc_info.value, BlockTimeoutError)
        assert exc_info.value.message.startswith("[42P01]")
        assert "does not exist" in exc_info.value.message


class TestDeadline:
    """Tests for the per-block deadline."""

    def test_deadline_cancels_the_whole_block(
        self, session: PostgresSession, connection: MagicMock, cursor: MagicMock
    ) -> None:
        """Test that a block still running at its deadline is cancelled as one unit."""
        cancelled = threading.Event()
        connection.cancel.side_effect = cancelled.set

        def run_until_cancelled(sql):
            assert cancelled.wait(5.0)
            raise pg_errors.QueryCanceled("canceling statement due to user request")

        cursor.execute.side_effect = run_until_cancelled

        with pytest.raises(BlockTimeoutError, match="canceled after 0.05s"):
            session.execute("SELECT pg_sleep(20); SELECT pg_sleep(20);", 0.05)
        connection.cancel.assert_called_once()

    def test_finished_block_is_not_cancelled(
        self, session: PostgresSession, connection: MagicMock, cursor: MagicMock
    ) -> None:
        cursor.description = None

        session.execute("SELECT 1", 0.05)
        time.sleep(0.15)

        connection.cancel.assert_not_called()


class TestCatalog:
    """Tests for existence checks and teardown drops."""

    def test_relation_exists_via_to_regclass(self, session: PostgresSession, cursor: MagicMock) -> None:
        cursor.fetchone.return_value = (True,)

        assert session.object_exists(SqlObject(ObjectKind.MATERIALIZED_VIEW, "mvw_precinct"))
        cursor.execute.assert_called_once_with("SELECT to_regclass(%s) IS NOT NULL", ('"mvw_precinct"',))

    def test_function_exists_via_pg_proc(self, session: PostgresSession, cursor: MagicMock) -> None:
        cursor.fetchone.return_value = (False,)

        assert not session.object_exists(SqlObject(ObjectKind.FUNCTION, "polling_place_for_parcel"))
        query, params = cursor.execute.call_args.args
        assert "pg_proc" in query
        assert params == ("polling_place_for_parcel",)

    def test_drop_cascades(self, session: PostgresSession, cursor: MagicMock) -> None:
        session.drop_object(SqlObject(ObjectKind.MATERIALIZED_VIEW, "mvw_precinct"))

        cursor.execute.assert_called_once_with('DROP MATERIALIZED VIEW IF EXISTS "mvw_precinct" CASCADE')

    def test_drop_error_names_the_statement(self, session: PostgresSession, cursor: MagicMock) -> None:
        cursor.execute.side_effect = psycopg2.ProgrammingError("must be owner of table parcels")

        with pytest.raises(ExecutionError) as exc_info:
            session.drop_object(SqlObject(ObjectKind.TABLE, "parcels"))

        assert exc_info.value.statement == 'DROP TABLE IF EXISTS "parcels" CASCADE'


class TestLostConnection:
    """Tests for a connection that goes away mid-run."""

    def test_every_operation_raises_execution_error(
        self, session: PostgresSession, connection: MagicMock
    ) -> None:
        connection.cursor.side_effect = psycopg2.InterfaceError("connection already closed")
        table = SqlObject(ObjectKind.TABLE, "scratch")

        with pytest.raises(ExecutionError, match="connection already closed"):
            session.execute("SELECT 1", 5.0)
        with pytest.raises(ExecutionError, match="connection already closed"):
            session.object_exists(table)
        with pytest.raises(ExecutionError, match="connection already closed"):
            session.drop_object(table)

    def test_run_continues_and_teardown_collects(
        self, session: PostgresSession, connection: MagicMock, cursor: MagicMock
    ) -> None:
        """Test that a connection lost in the first block fails each block and never escapes the run."""
        cursor.fetchone.return_value = (False,)

        def lose_connection(sql, params=None):
            if params is None:
                connection.cursor.side_effect = psycopg2.InterfaceError("connection already closed")
                raise psycopg2.OperationalError("server closed the connection unexpectedly")

        cursor.execute.side_effect = lose_connection
        blocks = extract_blocks(
            "```sql\nCREATE TABLE a (id int);\n```\n\n"
            "```sql\nCREATE TABLE b (id int);\n```\n\n"
            "```sql\nSELECT 1;\n```\n"
        )
        engine = ExecutionEngine(session, timeout=5.0, policy=ErrorPolicy.CONTINUE)
        plan = link_blocks(blocks)

        with engine.session_scope(plan):
            results = engine.run(plan)

        assert [r.status for r in results] == [ExecutionStatus.FAILED] * 3
        assert "server closed the connection" in results[0].error
        assert "connection already closed" in results[2].error
        assert len(engine.teardown_errors) == 2
        assert engine.teardown_errors[0].startswith("table b:")
