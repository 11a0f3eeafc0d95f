"""
Error Check
===========

Validates blocks that are documented to fail.
"""

from tutorial_verifier.checks.base import Check
from tutorial_verifier.models import CheckResult, ExecutionResult, Expectation


class ErrorCheck(Check):
    """Passes when an expected error occurred; fails when an unexpected one did or none did."""

    @property
    def name(self) -> str:
        return "ErrorCheck"

    def verify(self, result: ExecutionResult, expectation: Expectation) -> CheckResult:
        expected = expectation.expect_error
        if expected is None:
            if result.error:
                return self.failed(f"Unexpected error: {result.error}")
            return self.skipped()

        if result.error is None:
            return self.failed(f"Expected an error containing {expected!r} but the block succeeded")
        if expected.lower() not in result.error.lower():
            return self.failed(
                f"Expected an error containing {expected!r}, got: {result.error}",
                expected=expected,
                actual=result.error,
            )
        return self.passed(f"Failed as documented: {result.error}")
