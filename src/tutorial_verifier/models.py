"""
Data Models
===========

Core data structures shared by the extractor, linker, engine, comparator
and report emitter.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from tutorial_verifier.errors import MismatchError


class BlockKind(Enum):
    """Classification of a SQL block by its leading statement."""

    DDL = "ddl"
    DML = "dml"
    QUERY = "query"
    OTHER = "other"


class ObjectKind(Enum):
    """Kinds of database objects a block can create."""

    TABLE = "table"
    VIEW = "view"
    MATERIALIZED_VIEW = "materialized view"
    FUNCTION = "function"
    INDEX = "index"


class ExecutionStatus(Enum):
    """Outcome of executing a single block."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class CheckStatus(Enum):
    """Status of a single comparator check."""

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class Verdict(Enum):
    """Comparison verdict for an executed block."""

    MATCH = "match"
    MISMATCH = "mismatch"
    UNVERIFIED = "unverified"


class ErrorPolicy(Enum):
    """What the engine does when a block fails."""

    HALT = "halt"
    CONTINUE = "continue"


@dataclass(frozen=True)
class SqlObject:
    """A named database object created by a block."""

    kind: ObjectKind
    name: str


@dataclass(frozen=True)
class Expectation:
    """Expected result annotation attached to a block."""

    row_count: Optional[int] = None
    non_empty: bool = False
    empty: bool = False
    rows: tuple[tuple[str, ...], ...] = ()
    columns: Optional[tuple[str, ...]] = None
    tolerance: float = 1e-6
    ordered: bool = True
    expect_error: Optional[str] = None


@dataclass(frozen=True)
class Block:
    """A fenced SQL block parsed from the tutorial document."""

    index: int
    sql: str
    start_line: int
    info: str = "sql"
    section: str = ""
    kind: BlockKind = BlockKind.OTHER
    defines: tuple[SqlObject, ...] = ()
    requires: tuple[str, ...] = ()
    expectation: Optional[Expectation] = None
    related_to: Optional[int] = None
    skip: bool = False

    @property
    def defined_names(self) -> frozenset[str]:
        return frozenset(obj.name for obj in self.defines)

    def excerpt(self, width: int = 60) -> str:
        """First meaningful line of the block, trimmed for messages."""
        for line in self.sql.splitlines():
            stripped = line.strip()
            if stripped and not stripped.startswith("--"):
                return stripped if len(stripped) <= width else stripped[: width - 3] + "..."
        return ""


@dataclass
class ExecutionPlan:
    """Blocks in execution order plus the dependency edges behind it."""

    blocks: list[Block]
    dependencies: dict[int, frozenset[int]] = field(default_factory=dict)

    @property
    def order(self) -> list[int]:
        return [block.index for block in self.blocks]

    def depends_on(self, index: int) -> frozenset[int]:
        return self.dependencies.get(index, frozenset())


@dataclass
class ExecutionResult:
    """Captured outcome of running one block."""

    block: Block
    status: ExecutionStatus
    columns: list[str] = field(default_factory=list)
    rows: list[tuple[Any, ...]] = field(default_factory=list)
    error: Optional[str] = None
    error_type: Optional[str] = None
    elapsed_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS


@dataclass
class CheckResult:
    """Result of a single comparator check."""

    check_name: str
    status: CheckStatus
    message: str
    details: dict = field(default_factory=dict)


@dataclass
class Comparison:
    """Verdict for one block with the checks that produced it."""

    block_index: int
    verdict: Verdict
    diff: str = ""
    checks: list[CheckResult] = field(default_factory=list)

    def raise_for_verdict(self) -> None:
        """Raise MismatchError when the verdict is MISMATCH."""
        if self.verdict == Verdict.MISMATCH:
            messages = [c.message for c in self.checks if c.status == CheckStatus.FAILED]
            raise MismatchError(self.block_index, self.diff, "; ".join(messages))


@dataclass
class BlockOutcome:
    """Execution result paired with its comparison."""

    result: ExecutionResult
    comparison: Optional[Comparison] = None

    @property
    def block(self) -> Block:
        return self.result.block

    @property
    def passed(self) -> bool:
        return (
            self.result.succeeded
            and self.comparison is not None
            and self.comparison.verdict == Verdict.MATCH
        )

    @property
    def failed(self) -> bool:
        if self.result.status == ExecutionStatus.FAILED:
            return True
        return self.comparison is not None and self.comparison.verdict == Verdict.MISMATCH


@dataclass
class Report:
    """Aggregate of all block outcomes for one run."""

    document: str
    policy: ErrorPolicy
    outcomes: list[BlockOutcome]
    teardown_errors: list[str] = field(default_factory=list)

    @property
    def passed(self) -> int:
        return sum(1 for o in self.outcomes if o.passed)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.failed)

    @property
    def unverified(self) -> int:
        return sum(
            1
            for o in self.outcomes
            if o.comparison is not None and o.comparison.verdict == Verdict.UNVERIFIED
        )

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.result.status == ExecutionStatus.SKIPPED)

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0
