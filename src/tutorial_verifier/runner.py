"""
Tutorial Verifier
=================

Orchestrates a full run: extract blocks, link them into a plan, execute the
plan over one session with scoped teardown, compare, and build the report.
"""

import time
import uuid
from pathlib import Path
from typing import Callable

from observability.logging_config import bind_context, clear_context, get_logger
from observability.metrics import RUN_DURATION
from observability.tracing import get_tracer
from tutorial_verifier.comparator import ResultComparator
from tutorial_verifier.db.base import DatabaseSession
from tutorial_verifier.engine import DEFAULT_TIMEOUT, ExecutionEngine
from tutorial_verifier.extractor import extract_blocks
from tutorial_verifier.linker import link_blocks
from tutorial_verifier.models import ErrorPolicy, ExecutionPlan, Report
from tutorial_verifier.reporting import build_report

logger = get_logger(__name__)
tracer = get_tracer(__name__)


class TutorialVerifier:
    """
    Verifies the SQL in a tutorial document against a live database.

    The verifier:
    1. Extracts fenced SQL blocks with their expectations
    2. Orders them so definitions run before their uses
    3. Executes them sequentially, honouring the error policy
    4. Compares results with expectations
    5. Drops everything the run created before returning
    """

    def __init__(
        self,
        session_factory: Callable[[], DatabaseSession],
        timeout: float = DEFAULT_TIMEOUT,
        policy: ErrorPolicy = ErrorPolicy.HALT,
        comparator: ResultComparator | None = None,
    ) -> None:
        """
        Initialize the verifier.

        Args:
            session_factory: Opens the database session for a run
            timeout: Per-block timeout in seconds
            policy: Error policy for failing blocks
            comparator: Result comparator (defaults to the standard check chain)
        """
        self.session_factory = session_factory
        self.timeout = timeout
        self.policy = policy
        self.comparator = comparator or ResultComparator()

    @staticmethod
    def plan(text: str, document: str = "<string>") -> ExecutionPlan:
        """Extract and link without touching the database."""
        return link_blocks(extract_blocks(text, source=document))

    def verify_file(self, path: str | Path) -> Report:
        path = Path(path)
        return self.verify_text(path.read_text(encoding="utf-8"), document=str(path))

    def verify_text(self, text: str, document: str = "<string>") -> Report:
        """
        Run the whole pipeline for a document's text.

        Raises:
            ParseError: If the document is malformed
            DependencyCycleError: If the blocks cannot be ordered
            ConfigurationError: If the session cannot be opened
        """
        bind_context(document=document, run_id=uuid.uuid4().hex[:12])
        start = time.perf_counter()
        try:
            with tracer.start_as_current_span("tutorial_verifier.run") as span:
                span.set_attribute("document", document)
                plan = self.plan(text, document)
                span.set_attribute("blocks", len(plan.blocks))
                logger.info("run_started", blocks=len(plan.blocks), policy=self.policy.value)

                with self.session_factory() as session:
                    engine = ExecutionEngine(session, timeout=self.timeout, policy=self.policy)
                    with engine.session_scope(plan):
                        results = engine.run(plan)

                outcomes = self.comparator.compare_all(results)
                report = build_report(document, self.policy, outcomes, engine.teardown_errors)
                span.set_attribute("failed", report.failed)
                logger.info(
                    "run_finished",
                    passed=report.passed,
                    failed=report.failed,
                    unverified=report.unverified,
                    skipped=report.skipped,
                )
                return report
        finally:
            RUN_DURATION.observe(time.perf_counter() - start)
            clear_context()
