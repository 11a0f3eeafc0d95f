"""
Block Extractor
===============

Pulls fenced SQL blocks out of a Markdown tutorial, together with their
expectation annotations, dependency markers and section headings.

Annotation convention (inside the block, or in an HTML comment directly
after the closing fence)::

    -- expect: rows 3
    -- expect: row 1 | Precinct 12
    <!-- expect: non-empty; tolerance 1e-4 -->
"""

import re
import shlex
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

from observability.logging_config import get_logger
from tutorial_verifier import sql as sqltext
from tutorial_verifier.errors import ParseError
from tutorial_verifier.models import Block, Expectation, ObjectKind, SqlObject

logger = get_logger(__name__)

SQL_LANGUAGES = {"sql", "pgsql", "postgresql", "postgres", "plpgsql"}
SKIP_FLAGS = {"no-verify", "no-parse"}

_FENCE_OPEN = re.compile(r"^(?P<indent> {0,3})(?P<fence>`{3,}|~{3,})(?P<info>.*)$")
_HEADING = re.compile(r"^\s{0,3}#{1,6}\s+(?P<title>.+?)\s*#*\s*$")
_EXPECT_LINE = re.compile(r"^\s*--\s*expect\s*:\s*(?P<directive>.+?)\s*$", re.IGNORECASE)
_MARKER_LINE = re.compile(
    r"^\s*--\s*(?P<marker>depends-on|defines|verify)\s*:\s*(?P<value>.+?)\s*$",
    re.IGNORECASE,
)
_HTML_EXPECT = re.compile(r"^\s*<!--\s*expect\s*:\s*(?P<body>.*?)\s*-->\s*$", re.IGNORECASE)

_DEFINE_KINDS = {
    "table": ObjectKind.TABLE,
    "view": ObjectKind.VIEW,
    "materialized-view": ObjectKind.MATERIALIZED_VIEW,
    "matview": ObjectKind.MATERIALIZED_VIEW,
    "function": ObjectKind.FUNCTION,
    "index": ObjectKind.INDEX,
}


@dataclass
class _RawFence:
    info: str
    start_line: int
    section: str
    lines: list[str] = field(default_factory=list)
    trailing_expect: list[str] = field(default_factory=list)


def extract_blocks(text: str, source: Optional[str] = None) -> list[Block]:
    """
    Extract every fenced SQL block from a document, in document order.

    Args:
        text: Raw Markdown text
        source: Optional document name used in log messages

    Returns:
        Ordered list of Blocks, indexed from 0

    Raises:
        ParseError: On an unterminated fence or a malformed annotation
    """
    fences = _scan_fences(text)
    blocks: list[Block] = []
    for fence in fences:
        blocks.append(_build_block(len(blocks), fence))

    blocks = _tag_related(blocks)
    logger.debug("blocks_extracted", document=source, count=len(blocks))
    return blocks


def extract_file(path: str | Path) -> list[Block]:
    """Read a document with a fixed encoding and extract its blocks."""
    path = Path(path)
    return extract_blocks(path.read_text(encoding="utf-8"), source=str(path))


def _scan_fences(text: str) -> list[_RawFence]:
    lines = text.splitlines()
    fences: list[_RawFence] = []
    section = ""
    current: Optional[_RawFence] = None
    fence_char = ""
    fence_len = 0
    is_sql = False
    awaiting_expect: Optional[_RawFence] = None

    for lineno, line in enumerate(lines, 1):
        if current is not None:
            stripped = line.strip()
            if (
                stripped
                and set(stripped) == {fence_char}
                and len(stripped) >= fence_len
                and len(line) - len(line.lstrip(" ")) <= 3
            ):
                if is_sql:
                    fences.append(current)
                    awaiting_expect = current
                current = None
                continue
            current.lines.append(line)
            continue

        if awaiting_expect is not None:
            match = _HTML_EXPECT.match(line)
            if match:
                awaiting_expect.trailing_expect.extend(
                    part.strip() for part in match.group("body").split(";") if part.strip()
                )
                continue
            if line.strip():
                awaiting_expect = None

        opening = _FENCE_OPEN.match(line)
        if opening:
            fence = opening.group("fence")
            info = opening.group("info").strip()
            if fence[0] == "`" and "`" in info:
                # Inline code span, not a fence.
                pass
            else:
                fence_char = fence[0]
                fence_len = len(fence)
                is_sql = _language(info) in SQL_LANGUAGES
                current = _RawFence(info=info, start_line=lineno, section=section)
                awaiting_expect = None
                continue

        heading = _HEADING.match(line)
        if heading:
            section = heading.group("title")
            awaiting_expect = None

    if current is not None:
        excerpt = current.lines[0].strip() if current.lines else current.info
        raise ParseError(
            f"unterminated code fence opened with {fence_char * fence_len}",
            line=current.start_line,
            excerpt=excerpt,
        )
    return fences


def _language(info: str) -> str:
    token = info.split(maxsplit=1)[0] if info.split() else ""
    return token.strip("{}.").lower()


def _fence_flags(info: str) -> set[str]:
    try:
        tokens = shlex.split(info)
    except ValueError:
        tokens = info.split()
    return {token.lower() for token in tokens[1:]}


def _build_block(index: int, fence: _RawFence) -> Block:
    sql = "\n".join(fence.lines)
    directives: list[tuple[int, str]] = []
    extra_requires: list[str] = []
    extra_defines: list[SqlObject] = []
    skip = bool(_fence_flags(fence.info) & SKIP_FLAGS)

    for offset, line in enumerate(fence.lines, 1):
        lineno = fence.start_line + offset
        expect = _EXPECT_LINE.match(line)
        if expect:
            directives.append((lineno, expect.group("directive")))
            continue
        marker = _MARKER_LINE.match(line)
        if not marker:
            continue
        name = marker.group("marker").lower()
        value = marker.group("value")
        if name == "depends-on":
            extra_requires.extend(sqltext.normalize_name(v) for v in value.split(",") if v.strip())
        elif name == "defines":
            for item in value.split(","):
                if item.strip():
                    extra_defines.append(_parse_defined(item.strip(), lineno))
        elif value.strip().lower() == "skip":
            skip = True
        else:
            raise ParseError(f"unknown verify marker {value!r}", line=lineno, excerpt=line.strip())

    closing_line = fence.start_line + len(fence.lines) + 1
    directives.extend((closing_line, d) for d in fence.trailing_expect)

    defines = list(sqltext.defined_objects(sql))
    for obj in extra_defines:
        if obj not in defines:
            defines.append(obj)
    defined_names = {obj.name for obj in defines}
    requires = [name for name in sqltext.referenced_names(sql) if name not in defined_names]
    for name in extra_requires:
        if name not in requires and name not in defined_names:
            requires.append(name)

    return Block(
        index=index,
        sql=sql,
        start_line=fence.start_line,
        info=fence.info,
        section=fence.section,
        kind=sqltext.classify(sql),
        defines=tuple(defines),
        requires=tuple(requires),
        expectation=parse_expectation(directives) if directives else None,
        skip=skip,
    )


def _parse_defined(item: str, lineno: int) -> SqlObject:
    if ":" in item:
        kind_text, name = item.split(":", 1)
        kind = _DEFINE_KINDS.get(kind_text.strip().lower())
        if kind is None:
            raise ParseError(f"unknown object kind {kind_text!r}", line=lineno, excerpt=item)
        return SqlObject(kind=kind, name=sqltext.normalize_name(name))
    return SqlObject(kind=ObjectKind.TABLE, name=sqltext.normalize_name(item))


def parse_expectation(directives: list[tuple[int, str]]) -> Expectation:
    """
    Build an Expectation from ``expect:`` directives.

    Args:
        directives: (line number, directive text) pairs

    Returns:
        Expectation combining all directives

    Raises:
        ParseError: On an unknown or malformed directive
    """
    values: dict = {"rows": []}
    for lineno, directive in directives:
        keyword, _, argument = directive.strip().partition(" ")
        keyword = keyword.lower()
        argument = argument.strip()
        try:
            if keyword == "rows":
                values["row_count"] = int(argument)
            elif keyword in ("non-empty", "nonempty"):
                values["non_empty"] = True
            elif keyword == "empty":
                values["empty"] = True
            elif keyword == "row":
                values["rows"].append(tuple(cell.strip() for cell in argument.split("|")))
            elif keyword == "columns":
                values["columns"] = tuple(c.strip().lower() for c in argument.split(",") if c.strip())
            elif keyword == "tolerance":
                values["tolerance"] = float(argument)
            elif keyword == "unordered":
                values["ordered"] = False
            elif keyword == "error":
                values["expect_error"] = argument
            else:
                raise ParseError(f"unknown expect directive {keyword!r}", line=lineno, excerpt=directive)
        except ValueError as e:
            raise ParseError(f"malformed expect directive: {e}", line=lineno, excerpt=directive) from e

    if values.get("row_count") is not None and values["row_count"] < 0:
        raise ParseError("row count cannot be negative", line=directives[0][0])
    values["rows"] = tuple(values["rows"])
    return Expectation(**values)


def _tag_related(blocks: list[Block]) -> list[Block]:
    """Tag each block with the nearest earlier block in its section that defines what it uses."""
    tagged: list[Block] = []
    for block in blocks:
        related = None
        needed = set(block.requires)
        for earlier in reversed(tagged):
            if earlier.section != block.section:
                break
            if earlier.defined_names & needed:
                related = earlier.index
                break
        if related is not None:
            block = replace(block, related_to=related)
        tagged.append(block)
    return tagged
