"""
Execution Engine
================

Runs planned blocks one at a time over a single session, applies the
halt/continue error policy, and drops every object the run created when the
run ends, however it ends.
"""

import time
from contextlib import contextmanager
from typing import Iterator, Optional

from observability.logging_config import block_context, get_logger
from observability.metrics import TEARDOWN_ERRORS, TEARDOWN_PENDING, track_block
from observability.tracing import get_tracer
from tutorial_verifier.db.base import DatabaseSession
from tutorial_verifier.errors import ExecutionError
from tutorial_verifier.models import (
    Block,
    ErrorPolicy,
    ExecutionPlan,
    ExecutionResult,
    ExecutionStatus,
    SqlObject,
)

logger = get_logger(__name__)
tracer = get_tracer(__name__)

DEFAULT_TIMEOUT = 30.0


class ExecutionEngine:
    """
    Sequential executor for an ExecutionPlan.

    The engine:
    1. Skips blocks marked skip, and blocks whose dependencies did not succeed
    2. Executes each remaining block with a bounded timeout
    3. Stops at the first failure under HALT, carries on under CONTINUE
    4. Remembers what each executed block created, for teardown
    """

    def __init__(
        self,
        session: DatabaseSession,
        timeout: float = DEFAULT_TIMEOUT,
        policy: ErrorPolicy = ErrorPolicy.HALT,
    ) -> None:
        self.session = session
        self.timeout = timeout
        self.policy = policy
        self.created: list[SqlObject] = []
        self.preexisting: set[SqlObject] = set()
        self.teardown_errors: list[str] = []

    @contextmanager
    def session_scope(self, plan: ExecutionPlan) -> Iterator["ExecutionEngine"]:
        """
        Scope a run: snapshot pre-existing objects, then tear down on exit.

        Teardown runs on success, on errors and on KeyboardInterrupt or other
        cancellation exceptions propagating out of the block.
        """
        self.created = []
        self.teardown_errors = []
        self.preexisting = self._snapshot(plan)
        try:
            yield self
        finally:
            self.teardown()

    def _snapshot(self, plan: ExecutionPlan) -> set[SqlObject]:
        existing = set()
        for block in plan.blocks:
            for obj in block.defines:
                if obj not in existing and self.session.object_exists(obj):
                    existing.add(obj)
        if existing:
            logger.info(
                "objects_preexisting",
                objects=sorted(obj.name for obj in existing),
            )
        return existing

    def run(self, plan: ExecutionPlan) -> list[ExecutionResult]:
        """
        Execute the plan.

        Args:
            plan: Blocks in dependency order

        Returns:
            One ExecutionResult per block, in plan order
        """
        results: list[ExecutionResult] = []
        succeeded: set[int] = set()
        halted = False

        for block in plan.blocks:
            if halted:
                results.append(self._skipped(block, "run halted by an earlier failure"))
                continue
            if block.skip:
                results.append(self._skipped(block, "marked skip"))
                continue
            missing = sorted(plan.depends_on(block.index) - succeeded)
            if missing:
                reason = "dependency did not succeed: " + ", ".join(f"#{i}" for i in missing)
                results.append(self._skipped(block, reason))
                continue

            result = self.execute_block(block)
            results.append(result)
            if result.succeeded:
                succeeded.add(block.index)
            elif self.policy == ErrorPolicy.HALT:
                logger.warning("run_halted", block=block.index, line=block.start_line)
                halted = True

        return results

    def execute_block(self, block: Block) -> ExecutionResult:
        """Execute one block and capture its rows or error."""
        with block_context(block.index, block.start_line), tracer.start_as_current_span(
            "tutorial_verifier.block"
        ) as span:
            span.set_attribute("block.index", block.index)
            span.set_attribute("block.kind", block.kind.value)
            self._track_created(block)

            start = time.perf_counter()
            error: Optional[ExecutionError] = None
            try:
                output = self.session.execute(block.sql, self.timeout)
            except ExecutionError as e:
                error = e.for_block(block.index, block.excerpt())
            elapsed_ms = (time.perf_counter() - start) * 1000.0

            if error is None:
                result = ExecutionResult(
                    block=block,
                    status=ExecutionStatus.SUCCESS,
                    columns=output.columns,
                    rows=output.rows,
                    elapsed_ms=elapsed_ms,
                )
                logger.info("block_executed", rows=len(output.rows), elapsed_ms=round(elapsed_ms, 2))
            else:
                expected = block.expectation.expect_error if block.expectation else None
                matched = expected is not None and expected.lower() in error.message.lower()
                result = ExecutionResult(
                    block=block,
                    status=ExecutionStatus.SUCCESS if matched else ExecutionStatus.FAILED,
                    error=error.message.strip(),
                    error_type=type(error).__name__,
                    elapsed_ms=elapsed_ms,
                )
                log = logger.info if matched else logger.error
                log("block_failed", expected=matched, error=error.message.strip())

            span.set_attribute("block.status", result.status.value)
            track_block(result.status.value, block.kind.value, elapsed_ms / 1000.0)
            return result

    def _track_created(self, block: Block) -> None:
        # Recorded before execution: a failing block may still have created
        # some of its objects.
        for obj in block.defines:
            if obj not in self.preexisting and obj not in self.created:
                self.created.append(obj)
        TEARDOWN_PENDING.set(len(self.created))

    def _skipped(self, block: Block, reason: str) -> ExecutionResult:
        logger.info("block_skipped", block=block.index, reason=reason)
        track_block(ExecutionStatus.SKIPPED.value, block.kind.value, 0.0)
        return ExecutionResult(block=block, status=ExecutionStatus.SKIPPED, error=reason)

    def teardown(self) -> list[str]:
        """
        Drop created objects in reverse creation order.

        Errors are logged and collected rather than raised so teardown never
        masks the exception that ended the run.
        """
        while self.created:
            obj = self.created.pop()
            try:
                self.session.drop_object(obj)
                logger.info("teardown_drop", kind=obj.kind.value, name=obj.name)
            except ExecutionError as e:
                self._teardown_failed(obj, e.message.strip())
            except Exception as e:
                self._teardown_failed(obj, f"{type(e).__name__}: {e}")
            TEARDOWN_PENDING.set(len(self.created))
        return self.teardown_errors

    def _teardown_failed(self, obj: SqlObject, reason: str) -> None:
        self.teardown_errors.append(f"{obj.kind.value} {obj.name}: {reason}")
        TEARDOWN_ERRORS.inc()
        logger.error("teardown_failed", kind=obj.kind.value, name=obj.name, error=reason)
