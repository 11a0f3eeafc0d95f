"""
Checks Module
=============

Comparator checks run against each block's captured output.
"""

from tutorial_verifier.checks.base import Check, CheckChain
from tutorial_verifier.checks.cells import cells_match, render_cell, render_row
from tutorial_verifier.checks.error import ErrorCheck
from tutorial_verifier.checks.rows import ColumnsCheck, NonEmptyCheck, RowCountCheck, RowsCheck

__all__ = [
    "Check",
    "CheckChain",
    "ErrorCheck",
    "ColumnsCheck",
    "RowCountCheck",
    "NonEmptyCheck",
    "RowsCheck",
    "cells_match",
    "render_cell",
    "render_row",
]
