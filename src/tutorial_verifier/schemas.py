"""
Report Schemas
==============

Pydantic models for the JSON form of a verification report.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class StatusEnum(str, Enum):
    """Per-block status shown in reports."""

    PASS = "pass"
    FAIL = "fail"
    UNVERIFIED = "unverified"
    SKIPPED = "skipped"


class CheckResultResponse(BaseModel):
    """Single comparator check."""

    check_name: str = Field(..., description="Name of the check")
    status: str = Field(..., description="passed, failed or skipped")
    message: str = Field(..., description="Check message")
    details: dict[str, Any] = Field(default_factory=dict, description="Additional details")


class BlockReport(BaseModel):
    """Outcome of one block."""

    index: int = Field(..., ge=0, description="Block sequence index in the document")
    line: int = Field(..., ge=1, description="Line of the opening fence")
    section: str = Field("", description="Nearest preceding heading")
    kind: str = Field(..., description="ddl, dml, query or other")
    status: StatusEnum
    execution_status: str = Field(..., description="success, failed or skipped")
    verdict: str | None = Field(None, description="match, mismatch or unverified")
    excerpt: str = Field("", description="First line of the block")
    rows: int = Field(0, ge=0, description="Rows returned")
    elapsed_ms: float = Field(0.0, ge=0)
    error: str | None = None
    diff: str | None = None
    related_to: int | None = None
    checks: list[CheckResultResponse] = Field(default_factory=list)


class ReportSummary(BaseModel):
    """Totals for the run."""

    total: int
    passed: int
    failed: int
    unverified: int
    skipped: int


class ReportDocument(BaseModel):
    """Top-level JSON report."""

    document: str = Field(..., description="Path of the verified document")
    policy: str = Field(..., description="halt or continue")
    exit_code: int = Field(..., ge=0, le=2)
    summary: ReportSummary
    blocks: list[BlockReport]
    teardown_errors: list[str] = Field(default_factory=list)
