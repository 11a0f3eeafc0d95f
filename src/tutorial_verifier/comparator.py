"""
Result Comparator
=================

Turns each block's captured output into a verdict: MATCH, MISMATCH (with a
diff) or UNVERIFIED when the document declares no expectation.
"""

import difflib

from observability.logging_config import get_logger
from observability.metrics import track_verdict
from tutorial_verifier.checks.base import CheckChain
from tutorial_verifier.checks.cells import render_row
from tutorial_verifier.models import (
    BlockOutcome,
    CheckStatus,
    Comparison,
    ExecutionResult,
    ExecutionStatus,
    Expectation,
    Verdict,
)

logger = get_logger(__name__)


class ResultComparator:
    """Compares execution results with their blocks' expectations."""

    def __init__(self, chain: CheckChain | None = None) -> None:
        self.chain = chain or CheckChain()

    def compare(self, result: ExecutionResult) -> Comparison:
        """
        Compare one successful execution result with its expectation.

        Args:
            result: Result whose status is SUCCESS

        Returns:
            Comparison with verdict, diff and individual check results
        """
        block = result.block
        expectation = block.expectation
        if expectation is None:
            return Comparison(block_index=block.index, verdict=Verdict.UNVERIFIED)

        passed, checks = self.chain.run(result, expectation)
        if passed:
            return Comparison(block_index=block.index, verdict=Verdict.MATCH, checks=checks)

        failures = [c.message for c in checks if c.status == CheckStatus.FAILED]
        logger.warning("block_mismatch", block=block.index, line=block.start_line, failures=failures)
        return Comparison(
            block_index=block.index,
            verdict=Verdict.MISMATCH,
            diff=build_diff(expectation, result),
            checks=checks,
        )

    def compare_all(self, results: list[ExecutionResult]) -> list[BlockOutcome]:
        """
        Pair every result with a comparison, in document order.

        Blocks that failed or were skipped get no comparison.
        """
        outcomes = []
        for result in sorted(results, key=lambda r: r.block.index):
            comparison = None
            if result.status == ExecutionStatus.SUCCESS:
                comparison = self.compare(result)
                track_verdict(comparison.verdict.value)
            outcomes.append(BlockOutcome(result=result, comparison=comparison))
        return outcomes


def describe_expectation(expectation: Expectation) -> list[str]:
    """Expected side of the diff, one line per row or predicate."""
    lines = []
    if expectation.expect_error is not None:
        lines.append(f"error containing: {expectation.expect_error}")
    if expectation.columns is not None:
        lines.append(f"columns: {', '.join(expectation.columns)}")
    if expectation.row_count is not None:
        lines.append(f"rows: {expectation.row_count}")
    if expectation.non_empty:
        lines.append("rows: non-empty")
    if expectation.empty:
        lines.append("rows: 0")
    lines.extend(" | ".join(row) for row in expectation.rows)
    return lines


def describe_actual(expectation: Expectation, result: ExecutionResult) -> list[str]:
    """Actual side of the diff, mirroring the lines describe_expectation emits."""
    lines = []
    if expectation.expect_error is not None or result.error is not None:
        lines.append(f"error containing: {result.error}" if result.error else "error containing: (none)")
    if expectation.columns is not None:
        lines.append(f"columns: {', '.join(c.lower() for c in result.columns)}")
    if expectation.row_count is not None or expectation.empty:
        lines.append(f"rows: {len(result.rows)}")
    if expectation.non_empty:
        lines.append("rows: non-empty" if result.rows else "rows: 0")
    if expectation.rows:
        lines.extend(render_row(row) for row in result.rows)
    return lines


def build_diff(expectation: Expectation, result: ExecutionResult) -> str:
    diff = difflib.unified_diff(
        describe_expectation(expectation),
        describe_actual(expectation, result),
        fromfile="expected",
        tofile="actual",
        lineterm="",
    )
    return "\n".join(diff)
