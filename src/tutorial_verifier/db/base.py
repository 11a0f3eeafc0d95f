"""
Base Database Session
=====================

Abstract interface for the database the tutorial blocks run against.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from tutorial_verifier.models import SqlObject


@dataclass
class QueryOutput:
    """Columns and rows produced by the last statement of a block."""

    columns: list[str] = field(default_factory=list)
    rows: list[tuple[Any, ...]] = field(default_factory=list)


class DatabaseSession(ABC):
    """A single connection used sequentially for a whole run."""

    @abstractmethod
    def execute(self, sql: str, timeout: float) -> QueryOutput:
        """
        Execute a block of SQL.

        Args:
            sql: One or more statements
            timeout: Seconds before the block is cancelled

        Returns:
            QueryOutput of the last statement that produced a result set

        Raises:
            ExecutionError: If the database rejects a statement
            BlockTimeoutError: If the block exceeds the timeout
        """
        pass

    @abstractmethod
    def object_exists(self, obj: SqlObject) -> bool:
        """Whether the named object currently exists."""
        pass

    @abstractmethod
    def drop_object(self, obj: SqlObject) -> None:
        """Drop the object if it exists."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    def __enter__(self) -> "DatabaseSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
