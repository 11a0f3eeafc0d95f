"""
Tutorial Verifier
=================

Executes the fenced SQL blocks of a PostGIS tutorial against a live database,
in dependency order, and checks their results against annotations embedded
in the document.
"""

__version__ = "0.1.0"

from tutorial_verifier.comparator import ResultComparator
from tutorial_verifier.engine import ExecutionEngine
from tutorial_verifier.errors import (
    BlockTimeoutError,
    ConfigurationError,
    DependencyCycleError,
    ExecutionError,
    MismatchError,
    ParseError,
    RunCancelled,
    VerifierError,
)
from tutorial_verifier.extractor import extract_blocks, extract_file
from tutorial_verifier.linker import describe_plan, link_blocks
from tutorial_verifier.models import (
    Block,
    BlockKind,
    BlockOutcome,
    Comparison,
    ErrorPolicy,
    ExecutionPlan,
    ExecutionResult,
    ExecutionStatus,
    Expectation,
    Report,
    SqlObject,
    Verdict,
)
from tutorial_verifier.runner import TutorialVerifier

__all__ = [
    # Models
    "Block",
    "BlockKind",
    "BlockOutcome",
    "Comparison",
    "ErrorPolicy",
    "ExecutionPlan",
    "ExecutionResult",
    "ExecutionStatus",
    "Expectation",
    "Report",
    "SqlObject",
    "Verdict",
    # Pipeline
    "extract_blocks",
    "extract_file",
    "link_blocks",
    "describe_plan",
    "ExecutionEngine",
    "ResultComparator",
    "TutorialVerifier",
    # Errors
    "VerifierError",
    "ConfigurationError",
    "ParseError",
    "DependencyCycleError",
    "ExecutionError",
    "BlockTimeoutError",
    "MismatchError",
    "RunCancelled",
]
