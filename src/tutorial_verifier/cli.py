"""
Command Line Interface
======================

``verify --doc README.md --dsn postgresql://... --on-error halt --timeout 30``

Exit codes: 0 when every block passes, 1 on any mismatch or execution
failure, 2 when the document cannot be parsed or ordered (or the settings
are invalid), 128 + signal number when cancelled.
"""

import argparse
import signal
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from observability.logging_config import get_logger, setup_logging
from observability.metrics import setup_metrics, write_metrics
from observability.tracing import setup_tracing, shutdown_tracing
from tutorial_verifier import __version__
from tutorial_verifier.config import VerifierSettings
from tutorial_verifier.db import open_session
from tutorial_verifier.errors import (
    ConfigurationError,
    DependencyCycleError,
    ExecutionError,
    ParseError,
    RunCancelled,
)
from tutorial_verifier.linker import describe_plan
from tutorial_verifier.models import ErrorPolicy
from tutorial_verifier.reporting import EXIT_FAILED, EXIT_INVALID, format_text, to_json
from tutorial_verifier.runner import TutorialVerifier

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="verify",
        description="Execute the SQL blocks of a tutorial document and check their results.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  TUTORIAL_VERIFIER_DSN / DATABASE_URL   Connection string (else PG* variables)
  TUTORIAL_VERIFIER_TIMEOUT              Per-block timeout in seconds
  TUTORIAL_VERIFIER_ON_ERROR             halt or continue
  LOG_LEVEL, LOG_FORMAT                  Logging level and console/json format
  OTEL_EXPORTER_OTLP_ENDPOINT            Enable OpenTelemetry span export
""",
    )
    parser.add_argument("--doc", required=True, help="Path of the Markdown document to verify")
    parser.add_argument("--dsn", default=None, help="Database connection string")
    parser.add_argument(
        "--on-error",
        choices=[p.value for p in ErrorPolicy],
        default=None,
        help="Stop at the first failing block (halt, default) or keep going (continue)",
    )
    parser.add_argument("--timeout", type=float, default=None, help="Per-block timeout in seconds (default: 30)")
    parser.add_argument("--format", dest="output_format", choices=["text", "json"], default=None)
    parser.add_argument("--output", default=None, help="Write the report here instead of stdout")
    parser.add_argument("--plan", action="store_true", help="Print the execution plan and exit without a database")
    parser.add_argument("--timings", action="store_true", default=None, help="Include block timings in text output")
    parser.add_argument("--log-level", default=None, help="Log level (default: WARNING)")
    parser.add_argument("--log-format", choices=["console", "json"], default=None)
    parser.add_argument("--metrics-file", default=None, help="Write Prometheus metrics to this file after the run")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


@contextmanager
def cancel_on_sigterm() -> Iterator[None]:
    """
    Turn SIGTERM into RunCancelled so scoped teardown runs before exit.

    Only the first SIGTERM cancels; later ones are ignored until the scope
    exits, so they cannot interrupt the teardown that follows.
    """

    def _handler(signum, frame):
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
        raise RunCancelled(signum)

    previous = signal.signal(signal.SIGTERM, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = VerifierSettings.from_env(
            {
                "dsn": args.dsn,
                "timeout": args.timeout,
                "on_error": args.on_error,
                "output_format": args.output_format,
                "timings": args.timings,
                "log_level": args.log_level,
                "log_format": args.log_format,
                "metrics_file": args.metrics_file,
            }
        )
    except ConfigurationError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_INVALID

    setup_logging(settings.log_level, json_format=settings.log_format == "json")
    setup_metrics(__version__)
    setup_tracing(version=__version__)

    try:
        return _run(args, settings)
    finally:
        if settings.metrics_file:
            write_metrics(settings.metrics_file)
        shutdown_tracing()


def _run(args: argparse.Namespace, settings: VerifierSettings) -> int:
    doc = Path(args.doc)
    try:
        text = doc.read_text(encoding="utf-8")
    except OSError as e:
        print(f"error: cannot read {doc}: {e}", file=sys.stderr)
        return EXIT_INVALID

    if args.plan:
        try:
            plan = TutorialVerifier.plan(text, str(doc))
        except (ParseError, DependencyCycleError) as e:
            print(f"error: {doc}: {e}", file=sys.stderr)
            return EXIT_INVALID
        _emit(describe_plan(plan), args.output)
        return 0

    verifier = TutorialVerifier(
        session_factory=lambda: open_session(settings.dsn, settings.connect_timeout),
        timeout=settings.timeout,
        policy=settings.on_error,
    )
    try:
        with cancel_on_sigterm():
            report = verifier.verify_text(text, document=str(doc))
    except (ParseError, DependencyCycleError) as e:
        print(f"error: {doc}: {e}", file=sys.stderr)
        return EXIT_INVALID
    except ConfigurationError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_INVALID
    except ExecutionError as e:
        # Raised outside any block, e.g. the connection dropped while
        # snapshotting existing objects.
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILED
    except RunCancelled as e:
        logger.warning("run_cancelled", signal=e.signum)
        print(f"cancelled: {e}", file=sys.stderr)
        return 128 + e.signum
    except KeyboardInterrupt:
        print("cancelled: interrupted", file=sys.stderr)
        return 128 + signal.SIGINT

    if settings.output_format == "json":
        _emit(to_json(report), args.output)
    else:
        _emit(format_text(report, timings=settings.timings), args.output)
    return report.exit_code


def _emit(text: str, output: Optional[str]) -> None:
    if output:
        Path(output).write_text(text + "\n", encoding="utf-8")
    else:
        print(text)


if __name__ == "__main__":
    sys.exit(main())
