"""
SQLite Session
==============

In-process session on the standard library's sqlite3, for running plain-SQL
documents without a server and for exercising the engine in tests.
"""

import sqlite3
import time

from tutorial_verifier.db.base import DatabaseSession, QueryOutput
from tutorial_verifier.errors import BlockTimeoutError, ExecutionError
from tutorial_verifier.models import ObjectKind, SqlObject
from tutorial_verifier.sql import drop_statement, split_statements

_MASTER_TYPES = {
    ObjectKind.TABLE: "table",
    ObjectKind.VIEW: "view",
    ObjectKind.INDEX: "index",
}

# Progress handler granularity, in SQLite virtual machine instructions.
_PROGRESS_STEPS = 1000


class SqliteSession(DatabaseSession):
    """Executes blocks statement by statement on one sqlite3 connection."""

    def __init__(self, path: str = ":memory:") -> None:
        self.path = path
        self.connection = sqlite3.connect(path, isolation_level=None)
        self._deadline: float | None = None
        self.connection.set_progress_handler(self._progress, _PROGRESS_STEPS)

    def _progress(self) -> int:
        if self._deadline is not None and time.monotonic() > self._deadline:
            return 1
        return 0

    def execute(self, sql: str, timeout: float) -> QueryOutput:
        output = QueryOutput()
        cursor = self.connection.cursor()
        self._deadline = time.monotonic() + timeout
        try:
            for statement in split_statements(sql):
                cursor.execute(statement)
                if cursor.description is not None:
                    output = QueryOutput(
                        columns=[col[0] for col in cursor.description],
                        rows=[tuple(row) for row in cursor.fetchall()],
                    )
        except sqlite3.OperationalError as e:
            if str(e) == "interrupted":
                raise BlockTimeoutError(f"interrupted after {timeout:g}s") from e
            raise ExecutionError(str(e)) from e
        except sqlite3.Error as e:
            raise ExecutionError(str(e)) from e
        finally:
            self._deadline = None
            cursor.close()
        return output

    def object_exists(self, obj: SqlObject) -> bool:
        kind = _MASTER_TYPES.get(obj.kind)
        if kind is None:
            return False
        row = self.connection.execute(
            "SELECT 1 FROM sqlite_master WHERE type = ? AND name = ?",
            (kind, obj.name),
        ).fetchone()
        return row is not None

    def drop_object(self, obj: SqlObject) -> None:
        if obj.kind not in _MASTER_TYPES:
            return
        statement = drop_statement(obj, cascade=False)
        try:
            self.connection.execute(statement)
        except sqlite3.Error as e:
            raise ExecutionError(str(e), statement=statement) from e

    def close(self) -> None:
        self.connection.close()
