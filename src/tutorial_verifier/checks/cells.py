"""
Cell Comparison
===============

Tolerant comparison of one expected cell (as written in the document) with
one value returned by the database. Numbers, and the coordinates embedded in
WKT/EWKT geometry text, compare within a tolerance so reprojection drift in
the last digits does not fail a block. Integers (counts, ids, SRIDs) always
compare exactly.
"""

import math
import re
from decimal import Decimal
from typing import Any

_NUMBER = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")
_INTEGER = re.compile(r"[-+]?\d+")
_SRID = re.compile(r"SRID=\d+;", re.IGNORECASE)
_TRUE = {"t", "true", "yes", "on", "1"}
_FALSE = {"f", "false", "no", "off", "0"}


def render_cell(value: Any) -> str:
    """Text form of a database value, as it would be written in an expectation."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "t" if value else "f"
    if isinstance(value, float):
        return format(value, ".15g")
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex().upper()
    return str(value)


def render_row(row: tuple) -> str:
    return " | ".join(render_cell(value) for value in row)


def numbers_close(expected: float, actual: float, tolerance: float) -> bool:
    """Absolute tolerance near zero, relative tolerance for large magnitudes."""
    if math.isnan(expected) or math.isnan(actual):
        return math.isnan(expected) and math.isnan(actual)
    scale = max(1.0, abs(expected), abs(actual))
    return abs(expected - actual) <= tolerance * scale


def _as_number(text: str) -> float | None:
    if _NUMBER.fullmatch(text.strip()):
        return float(text)
    return None


def _is_integral(value: Any) -> bool:
    if isinstance(value, int):
        return True
    return isinstance(value, Decimal) and value.is_finite() and value == value.to_integral_value()


def _skeleton(text: str) -> tuple[str, list[str]]:
    # SRID=<n> stays part of the shape: a different SRID is never drift.
    srid = _SRID.match(text)
    head = srid.group(0).upper() if srid else ""
    body = text[len(head):] if srid else text
    numbers = [m.group(0) for m in _NUMBER.finditer(body)]
    shape = head + re.sub(r"\s+", " ", _NUMBER.sub("#", body)).strip()
    return shape, numbers


def _tokens_close(expected: str, actual: str, tolerance: float) -> bool:
    if _INTEGER.fullmatch(expected) and _INTEGER.fullmatch(actual):
        return int(expected) == int(actual)
    return numbers_close(float(expected), float(actual), tolerance)


def text_close(expected: str, actual: str, tolerance: float) -> bool:
    """
    Compare text whose non-numeric shape must match exactly and whose numbers may drift.

    Integers written without a fraction on both sides (ids, counts, SRIDs)
    compare exactly; only fractional numbers use the tolerance.
    """
    expected_shape, expected_numbers = _skeleton(expected.strip())
    actual_shape, actual_numbers = _skeleton(actual.strip())
    if expected_shape != actual_shape or len(expected_numbers) != len(actual_numbers):
        return False
    return all(
        _tokens_close(e, a, tolerance) for e, a in zip(expected_numbers, actual_numbers)
    )


def cells_match(expected: str, actual: Any, tolerance: float = 1e-6) -> bool:
    """
    Whether a database value satisfies the expected cell text.

    Args:
        expected: Cell as written in the expectation
        actual: Value returned by the database driver
        tolerance: Numeric tolerance

    Returns:
        True if the cell matches
    """
    wanted = expected.strip()
    if actual is None:
        return wanted.upper() == "NULL"
    if wanted.upper() == "NULL":
        return False

    if isinstance(actual, bool):
        return wanted.lower() in (_TRUE if actual else _FALSE)

    if isinstance(actual, (int, float, Decimal)):
        if _INTEGER.fullmatch(wanted) and _is_integral(actual):
            return int(wanted) == int(actual)
        number = _as_number(wanted)
        return number is not None and numbers_close(number, float(actual), tolerance)

    rendered = render_cell(actual).strip()
    if rendered == wanted:
        return True
    return text_close(wanted, rendered, tolerance)
