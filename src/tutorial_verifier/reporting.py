"""
Report Emitter
==============

Deterministic text and JSON summaries of a verification run.
"""

from tutorial_verifier.models import (
    BlockOutcome,
    CheckStatus,
    ErrorPolicy,
    ExecutionStatus,
    Report,
    Verdict,
)
from tutorial_verifier.schemas import (
    BlockReport,
    CheckResultResponse,
    ReportDocument,
    ReportSummary,
    StatusEnum,
)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2


def build_report(
    document: str,
    policy: ErrorPolicy,
    outcomes: list[BlockOutcome],
    teardown_errors: list[str] | None = None,
) -> Report:
    return Report(
        document=document,
        policy=policy,
        outcomes=sorted(outcomes, key=lambda o: o.block.index),
        teardown_errors=list(teardown_errors or []),
    )


def outcome_status(outcome: BlockOutcome) -> StatusEnum:
    if outcome.result.status == ExecutionStatus.SKIPPED:
        return StatusEnum.SKIPPED
    if outcome.failed:
        return StatusEnum.FAIL
    if outcome.comparison is not None and outcome.comparison.verdict == Verdict.UNVERIFIED:
        return StatusEnum.UNVERIFIED
    return StatusEnum.PASS


def format_text(report: Report, timings: bool = False) -> str:
    """
    Render the report as plain text.

    Output is identical for identical outcomes unless ``timings`` is set.
    """
    lines = [
        "=" * 60,
        f"TUTORIAL VERIFICATION: {report.document}",
        f"Policy: {report.policy.value}",
        "=" * 60,
    ]
    for outcome in report.outcomes:
        block = outcome.block
        status = outcome_status(outcome).value.upper()
        label = block.section or f"line {block.start_line}"
        line = f"[{block.index:>3}] {status:<10} {label}: {block.excerpt()}"
        if timings and outcome.result.status != ExecutionStatus.SKIPPED:
            line += f" ({outcome.result.elapsed_ms:.1f} ms)"
        lines.append(line)

        if outcome.result.error and outcome.result.status != ExecutionStatus.SUCCESS:
            lines.append(f"      line {block.start_line}: {outcome.result.error}")
        comparison = outcome.comparison
        if comparison is not None and comparison.verdict == Verdict.MISMATCH:
            for check in comparison.checks:
                if check.status == CheckStatus.FAILED:
                    lines.append(f"      {check.check_name}: {check.message}")
            for diff_line in comparison.diff.splitlines():
                lines.append(f"        {diff_line}")

    lines.append("-" * 60)
    lines.append(
        f"passed={report.passed} failed={report.failed} "
        f"unverified={report.unverified} skipped={report.skipped}"
    )
    if report.teardown_errors:
        lines.append("Teardown errors:")
        lines.extend(f"  {error}" for error in report.teardown_errors)
    lines.append("RESULT: " + ("PASS" if report.exit_code == EXIT_OK else "FAIL"))
    return "\n".join(lines)


def to_document(report: Report) -> ReportDocument:
    blocks = []
    for outcome in report.outcomes:
        block = outcome.block
        comparison = outcome.comparison
        blocks.append(
            BlockReport(
                index=block.index,
                line=block.start_line,
                section=block.section,
                kind=block.kind.value,
                status=outcome_status(outcome),
                execution_status=outcome.result.status.value,
                verdict=comparison.verdict.value if comparison else None,
                excerpt=block.excerpt(),
                rows=len(outcome.result.rows),
                elapsed_ms=round(outcome.result.elapsed_ms, 3),
                error=outcome.result.error,
                diff=comparison.diff if comparison and comparison.diff else None,
                related_to=block.related_to,
                checks=[
                    CheckResultResponse(
                        check_name=c.check_name,
                        status=c.status.value,
                        message=c.message,
                        details=c.details,
                    )
                    for c in (comparison.checks if comparison else [])
                ],
            )
        )
    return ReportDocument(
        document=report.document,
        policy=report.policy.value,
        exit_code=report.exit_code,
        summary=ReportSummary(
            total=len(report.outcomes),
            passed=report.passed,
            failed=report.failed,
            unverified=report.unverified,
            skipped=report.skipped,
        ),
        blocks=blocks,
        teardown_errors=report.teardown_errors,
    )


def to_json(report: Report) -> str:
    return to_document(report).model_dump_json(indent=2)
