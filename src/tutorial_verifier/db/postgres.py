"""
PostgreSQL Session
==================

psycopg2-backed session for running tutorial blocks against PostGIS.
"""

import threading

import psycopg2
from psycopg2 import errors as pg_errors

from observability.logging_config import get_logger
from tutorial_verifier.db.base import DatabaseSession, QueryOutput
from tutorial_verifier.errors import BlockTimeoutError, ConfigurationError, ExecutionError
from tutorial_verifier.models import ObjectKind, SqlObject
from tutorial_verifier.sql import drop_statement, quote_ident

logger = get_logger(__name__)


class PostgresSession(DatabaseSession):
    """
    Runs blocks over one autocommit connection.

    Autocommit keeps each block's side effects visible to later blocks and
    stops one failed block from aborting the transaction of the next.

    The timeout bounds the whole block, not each statement in it: a timer
    cancels the running query from the client side when the block's
    deadline passes.
    """

    def __init__(self, dsn: str, connect_timeout: int = 10) -> None:
        try:
            self.connection = psycopg2.connect(dsn, connect_timeout=connect_timeout)
        except psycopg2.Error as e:
            raise ConfigurationError(f"Cannot connect to database: {e}") from e
        self.connection.autocommit = True
        info = self.connection.info
        logger.info(
            "database_connected",
            host=info.host,
            dbname=info.dbname,
            server_version=info.server_version,
        )

    def execute(self, sql: str, timeout: float) -> QueryOutput:
        deadline = threading.Timer(timeout, self._cancel)
        deadline.daemon = True
        try:
            with self.connection.cursor() as cursor:
                deadline.start()
                cursor.execute(sql)
                if cursor.description is None:
                    return QueryOutput()
                columns = [col.name for col in cursor.description]
                return QueryOutput(columns=columns, rows=[tuple(row) for row in cursor.fetchall()])
        except pg_errors.QueryCanceled as e:
            raise BlockTimeoutError(f"canceled after {timeout:g}s: {_describe(e)}") from e
        except psycopg2.Error as e:
            raise ExecutionError(_describe(e)) from e
        finally:
            deadline.cancel()

    def _cancel(self) -> None:
        logger.warning("block_deadline_reached")
        try:
            self.connection.cancel()
        except psycopg2.Error as e:
            logger.warning("block_cancel_failed", error=str(e))

    def object_exists(self, obj: SqlObject) -> bool:
        try:
            with self.connection.cursor() as cursor:
                if obj.kind == ObjectKind.FUNCTION:
                    cursor.execute(
                        "SELECT EXISTS (SELECT 1 FROM pg_proc p "
                        "JOIN pg_namespace n ON n.oid = p.pronamespace "
                        "WHERE p.proname = %s AND pg_function_is_visible(p.oid))",
                        (obj.name,),
                    )
                else:
                    cursor.execute("SELECT to_regclass(%s) IS NOT NULL", (quote_ident(obj.name),))
                return bool(cursor.fetchone()[0])
        except psycopg2.Error as e:
            raise ExecutionError(_describe(e)) from e

    def drop_object(self, obj: SqlObject) -> None:
        statement = drop_statement(obj)
        try:
            with self.connection.cursor() as cursor:
                cursor.execute(statement)
        except psycopg2.Error as e:
            raise ExecutionError(_describe(e), statement=statement) from e

    def close(self) -> None:
        if not self.connection.closed:
            self.connection.close()


def _describe(error: psycopg2.Error) -> str:
    message = (error.pgerror or str(error)).strip()
    if error.pgcode:
        message = f"[{error.pgcode}] {message}"
    return message
