"""
Row Checks
==========

Checks on the shape and content of a block's result set.
"""

from typing import Optional

from tutorial_verifier.checks.base import Check
from tutorial_verifier.checks.cells import cells_match, render_row
from tutorial_verifier.models import CheckResult, ExecutionResult, Expectation


class ColumnsCheck(Check):
    """Validates the result column names."""

    @property
    def name(self) -> str:
        return "ColumnsCheck"

    def verify(self, result: ExecutionResult, expectation: Expectation) -> CheckResult:
        if expectation.columns is None:
            return self.skipped()
        if result.error is not None:
            return self.skipped("no result set")
        actual = tuple(column.lower() for column in result.columns)
        if actual != expectation.columns:
            return self.failed(
                f"Columns differ: expected {', '.join(expectation.columns)}; got {', '.join(actual) or '(none)'}",
                expected=list(expectation.columns),
                actual=list(actual),
            )
        return self.passed("Columns match")


class RowCountCheck(Check):
    """Validates an exact row count."""

    @property
    def name(self) -> str:
        return "RowCountCheck"

    def verify(self, result: ExecutionResult, expectation: Expectation) -> CheckResult:
        if expectation.row_count is None:
            return self.skipped()
        if result.error is not None:
            return self.skipped("no result set")
        actual = len(result.rows)
        if actual != expectation.row_count:
            return self.failed(
                f"Expected {expectation.row_count} rows, got {actual}",
                expected=expectation.row_count,
                actual=actual,
            )
        return self.passed(f"{actual} rows as expected")


class NonEmptyCheck(Check):
    """Validates the looser empty / non-empty predicates."""

    @property
    def name(self) -> str:
        return "NonEmptyCheck"

    def verify(self, result: ExecutionResult, expectation: Expectation) -> CheckResult:
        if not (expectation.non_empty or expectation.empty):
            return self.skipped()
        if result.error is not None:
            return self.skipped("no result set")
        count = len(result.rows)
        if expectation.non_empty and count == 0:
            return self.failed("Expected at least one row, got none")
        if expectation.empty and count > 0:
            return self.failed(f"Expected no rows, got {count}", actual=count)
        return self.passed("Row presence as expected")


class RowsCheck(Check):
    """Validates literal rows, cell by cell, within the expectation's tolerance."""

    @property
    def name(self) -> str:
        return "RowsCheck"

    def verify(self, result: ExecutionResult, expectation: Expectation) -> CheckResult:
        if not expectation.rows:
            return self.skipped()
        if result.error is not None:
            return self.skipped("no result set")

        expected = list(expectation.rows)
        actual = list(result.rows)
        if len(expected) != len(actual):
            return self.failed(
                f"Expected {len(expected)} literal rows, got {len(actual)}",
                expected=len(expected),
                actual=len(actual),
            )

        if expectation.ordered:
            for position, (want, got) in enumerate(zip(expected, actual), 1):
                if not rows_match(want, got, expectation.tolerance):
                    return self.failed(
                        f"Row {position} differs: expected {' | '.join(want)}; got {render_row(got)}",
                        row=position,
                    )
            return self.passed(f"All {len(actual)} rows match")

        missing = unpaired_row(expected, actual, expectation.tolerance)
        if missing is not None:
            return self.failed(f"No row matches: {' | '.join(expected[missing])}")
        return self.passed(f"All {len(actual)} rows match (unordered)")


def rows_match(expected: tuple[str, ...], actual: tuple, tolerance: float) -> bool:
    if len(expected) != len(actual):
        return False
    return all(cells_match(e, a, tolerance) for e, a in zip(expected, actual))


def unpaired_row(expected: list, actual: list, tolerance: float) -> Optional[int]:
    """
    Pair expected rows with actual rows one to one, as a multiset.

    Uses augmenting paths (Kuhn's algorithm), so a full pairing is found
    whenever one exists, even when a row fits several partners.

    Returns:
        Index of an expected row left without a partner, or None
    """
    fits = [
        [j for j, got in enumerate(actual) if rows_match(want, got, tolerance)]
        for want in expected
    ]
    partner: dict[int, int] = {}

    def place(i: int, seen: set[int]) -> bool:
        for j in fits[i]:
            if j in seen:
                continue
            seen.add(j)
            if j not in partner or place(partner[j], seen):
                partner[j] = i
                return True
        return False

    for i in range(len(expected)):
        if not place(i, set()):
            return i
    return None
