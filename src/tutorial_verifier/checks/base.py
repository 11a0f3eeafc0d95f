"""
Base Check Classes
==================

Abstract base class for comparator checks and the chain that runs them.
"""

from abc import ABC, abstractmethod

from tutorial_verifier.models import CheckResult, CheckStatus, ExecutionResult, Expectation


class Check(ABC):
    """Base class for all comparator checks."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name for this check."""
        pass

    @abstractmethod
    def verify(self, result: ExecutionResult, expectation: Expectation) -> CheckResult:
        """
        Check a block's captured output against its expectation.

        Args:
            result: Captured execution result
            expectation: The block's expectation annotation

        Returns:
            CheckResult; SKIPPED when the expectation says nothing this check covers
        """
        pass

    def passed(self, message: str, **details) -> CheckResult:
        return CheckResult(self.name, CheckStatus.PASSED, message, details)

    def failed(self, message: str, **details) -> CheckResult:
        return CheckResult(self.name, CheckStatus.FAILED, message, details)

    def skipped(self, message: str = "not applicable") -> CheckResult:
        return CheckResult(self.name, CheckStatus.SKIPPED, message)


class CheckChain:
    """Runs every check in sequence, collecting results."""

    def __init__(self, checks: list[Check] | None = None) -> None:
        """
        Initialize the chain.

        Args:
            checks: Checks to run. Defaults to the standard chain.
        """
        if checks is not None:
            self.checks = checks
        else:
            # Lazy import to avoid circular imports
            from tutorial_verifier.checks.error import ErrorCheck
            from tutorial_verifier.checks.rows import (
                ColumnsCheck,
                NonEmptyCheck,
                RowCountCheck,
                RowsCheck,
            )

            self.checks = [
                ErrorCheck(),
                ColumnsCheck(),
                RowCountCheck(),
                NonEmptyCheck(),
                RowsCheck(),
            ]

    def run(self, result: ExecutionResult, expectation: Expectation) -> tuple[bool, list[CheckResult]]:
        """
        Run all checks. Returns (all_passed, results).

        Unlike a fail-fast chain every check runs, so a report shows all the
        ways a block diverged.
        """
        results = [check.verify(result, expectation) for check in self.checks]
        return all(r.status != CheckStatus.FAILED for r in results), results
