"""
Pytest Fixtures
===============

Shared fixtures for tutorial verifier tests.
"""

import sys
from pathlib import Path

import pytest

# Add src and the repository root (observability) to path for imports
ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT / "src"))
sys.path.insert(0, str(ROOT))

from observability.logging_config import setup_logging
from tutorial_verifier.db.sqlite import SqliteSession
from tutorial_verifier.extractor import extract_blocks
from tutorial_verifier.models import Block, ExecutionResult, ExecutionStatus, Expectation
from tutorial_verifier.runner import TutorialVerifier

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def quiet_logging() -> None:
    """Route structured logs to the current stderr at WARNING before each test."""
    setup_logging("WARNING", json_format=False)


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES


@pytest.fixture
def bookshop_path() -> Path:
    """Tutorial whose query block refers to a view defined further down."""
    return FIXTURES / "bookshop.md"


@pytest.fixture
def bookshop_text(bookshop_path: Path) -> str:
    return bookshop_path.read_text(encoding="utf-8")


@pytest.fixture
def bookshop_blocks(bookshop_text: str) -> list[Block]:
    return extract_blocks(bookshop_text)


@pytest.fixture
def sqlite_session():
    """In-memory SQLite session, closed after the test."""
    session = SqliteSession()
    yield session
    session.close()


@pytest.fixture
def verifier() -> TutorialVerifier:
    """Verifier opening a fresh in-memory SQLite database per run."""
    return TutorialVerifier(session_factory=SqliteSession, timeout=5.0)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove environment variables that would leak into settings."""
    for name in (
        "TUTORIAL_VERIFIER_DSN",
        "TUTORIAL_VERIFIER_TIMEOUT",
        "TUTORIAL_VERIFIER_ON_ERROR",
        "TUTORIAL_VERIFIER_METRICS_FILE",
        "DATABASE_URL",
        "LOG_LEVEL",
        "LOG_FORMAT",
        "OTEL_EXPORTER_OTLP_ENDPOINT",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def make_block(sql: str = "SELECT 1", expectation: Expectation | None = None, index: int = 0) -> Block:
    """Build a block directly, bypassing the extractor."""
    return Block(index=index, sql=sql, start_line=1, expectation=expectation)


def make_result(
    rows: list[tuple],
    columns: list[str] | None = None,
    expectation: Expectation | None = None,
    error: str | None = None,
) -> ExecutionResult:
    """Build a successful execution result carrying the given rows."""
    return ExecutionResult(
        block=make_block(expectation=expectation),
        status=ExecutionStatus.SUCCESS,
        columns=columns or [],
        rows=rows,
        error=error,
    )


def write_doc(directory: Path, text: str, name: str = "tutorial.md") -> Path:
    path = directory / name
    path.write_text(text, encoding="utf-8")
    return path
