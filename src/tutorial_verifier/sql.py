"""
SQL Text Analysis
=================

Lightweight lexical helpers for finding the objects a SQL block creates and
the names it refers to. This is pattern matching, not parsing: it only needs
to be good enough to order tutorial blocks.
"""

import re

from tutorial_verifier.models import BlockKind, ObjectKind, SqlObject

_IDENT = r'(?:"[^"]+"|[A-Za-z_][\w$]*)'
_QUALIFIED = rf"{_IDENT}(?:\s*\.\s*{_IDENT})*"

_CREATE_PATTERN = re.compile(
    r"\bCREATE\s+(?:OR\s+REPLACE\s+)?"
    r"(?:(?:GLOBAL|LOCAL)\s+)?(?:TEMP\s+|TEMPORARY\s+|UNLOGGED\s+)?"
    r"(?P<kind>MATERIALIZED\s+VIEW|VIEW|TABLE|FUNCTION|(?:UNIQUE\s+)?INDEX(?:\s+CONCURRENTLY)?)\s+"
    rf"(?:IF\s+NOT\s+EXISTS\s+)?(?!(?:ON|AS)\b)(?P<name>{_QUALIFIED})",
    re.IGNORECASE,
)

_REFERENCE_PATTERN = re.compile(
    r"\b(?:FROM|JOIN|INTO|UPDATE|REFRESH\s+MATERIALIZED\s+VIEW(?:\s+CONCURRENTLY)?)"
    rf"\s+(?:ONLY\s+)?(?P<name>{_QUALIFIED})",
    re.IGNORECASE,
)

_INDEX_TARGET_PATTERN = re.compile(
    rf"\bINDEX\b[^;]*?\bON\s+(?:ONLY\s+)?(?P<name>{_QUALIFIED})",
    re.IGNORECASE,
)

_CALL_PATTERN = re.compile(rf"(?P<name>{_QUALIFIED})\s*\(")

_DOLLAR_TAG = re.compile(r"\$(?:[A-Za-z_]\w*)?\$")

# Words that may precede "(" or follow FROM/ON without naming an object.
_NOT_OBJECTS = {
    "select", "values", "lateral", "as", "in", "exists", "any", "all", "some",
    "and", "or", "not", "case", "when", "then", "else", "using", "with",
    "over", "filter", "within", "table", "view", "function", "index", "into",
    "returns", "language", "conflict", "commit", "delete", "update", "insert",
    "cast", "coalesce", "nullif", "greatest", "least", "row", "array", "where",
    "window", "partition", "order", "group", "by", "limit", "offset", "returning",
}

DDL_KEYWORDS = {
    "create", "alter", "drop", "truncate", "comment", "grant", "revoke",
    "refresh", "vacuum", "analyze", "cluster", "reindex",
}
DML_KEYWORDS = {"insert", "update", "delete", "merge", "copy"}
QUERY_KEYWORDS = {"select", "with", "values", "table", "explain", "show"}

_KIND_MAP = {
    "materialized view": ObjectKind.MATERIALIZED_VIEW,
    "view": ObjectKind.VIEW,
    "table": ObjectKind.TABLE,
    "function": ObjectKind.FUNCTION,
    "index": ObjectKind.INDEX,
}


def normalize_name(name: str) -> str:
    """Drop schema qualification and quoting, lowercase unquoted names."""
    parts = re.findall(_IDENT, name)
    last = parts[-1] if parts else name.strip()
    if last.startswith('"') and last.endswith('"'):
        return last[1:-1]
    return last.lower()


def _scan(sql: str, keep_dollar_bodies: bool) -> str:
    """Blank out comments and string literals, preserving offsets and newlines."""
    out = []
    i = 0
    n = len(sql)
    while i < n:
        ch = sql[i]
        if sql.startswith("--", i):
            end = sql.find("\n", i)
            end = n if end == -1 else end
            out.append(" " * (end - i))
            i = end
        elif sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            end = n if end == -1 else end + 2
            out.append(re.sub(r"[^\n]", " ", sql[i:end]))
            i = end
        elif ch == "'":
            j = i + 1
            while j < n:
                if sql[j] == "'" and j + 1 < n and sql[j + 1] == "'":
                    j += 2
                    continue
                if sql[j] == "'":
                    break
                j += 1
            end = min(j + 1, n)
            out.append(re.sub(r"[^\n]", " ", sql[i:end]))
            i = end
        elif ch == "$" and _DOLLAR_TAG.match(sql, i) and (i == 0 or not (sql[i - 1].isalnum() or sql[i - 1] == "_")):
            tag = _DOLLAR_TAG.match(sql, i).group(0)
            close = sql.find(tag, i + len(tag))
            body_end = n if close == -1 else close
            end = n if close == -1 else close + len(tag)
            if keep_dollar_bodies:
                body = _scan(sql[i + len(tag):body_end], True)
                out.append(" " * len(tag) + body + " " * (end - body_end))
            else:
                out.append(re.sub(r"[^\n]", " ", sql[i:end]))
            i = end
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def strip_comments_and_literals(sql: str) -> str:
    """Remove comments and string literals; dollar-quoted bodies stay visible."""
    return _scan(sql, keep_dollar_bodies=True)


def first_keyword(sql: str) -> str:
    match = re.search(r"[A-Za-z]+", strip_comments_and_literals(sql))
    return match.group(0).lower() if match else ""


def classify(sql: str) -> BlockKind:
    keyword = first_keyword(sql)
    if keyword in DDL_KEYWORDS:
        return BlockKind.DDL
    if keyword in DML_KEYWORDS:
        return BlockKind.DML
    if keyword in QUERY_KEYWORDS:
        return BlockKind.QUERY
    return BlockKind.OTHER


def defined_objects(sql: str) -> list[SqlObject]:
    """Objects created by CREATE statements, in order of appearance."""
    text = strip_comments_and_literals(sql)
    found: list[SqlObject] = []
    for match in _CREATE_PATTERN.finditer(text):
        raw_kind = re.sub(r"\s+", " ", match.group("kind").lower())
        raw_kind = raw_kind.replace("unique ", "").replace(" concurrently", "")
        obj = SqlObject(kind=_KIND_MAP[raw_kind], name=normalize_name(match.group("name")))
        if obj not in found:
            found.append(obj)
    return found


def referenced_names(sql: str) -> list[str]:
    """Relation names and called functions referenced by the SQL."""
    text = strip_comments_and_literals(sql)
    created_spans = [m.span("name") for m in _CREATE_PATTERN.finditer(text)]

    def inside_create(pos: int) -> bool:
        return any(start <= pos < end for start, end in created_spans)

    names: list[str] = []
    for pattern in (_REFERENCE_PATTERN, _INDEX_TARGET_PATTERN, _CALL_PATTERN):
        for match in pattern.finditer(text):
            if inside_create(match.start("name")):
                continue
            name = normalize_name(match.group("name"))
            if name in _NOT_OBJECTS or name in names:
                continue
            names.append(name)
    return names


def split_statements(sql: str) -> list[str]:
    """Split a block into statements on top-level semicolons."""
    masked = _scan(sql, keep_dollar_bodies=False)
    statements = []
    start = 0
    for pos, ch in enumerate(masked):
        if ch == ";":
            statement = sql[start:pos].strip()
            if strip_comments_and_literals(statement).strip():
                statements.append(statement)
            start = pos + 1
    tail = sql[start:].strip()
    if strip_comments_and_literals(tail).strip():
        statements.append(tail)
    return statements


def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def drop_statement(obj: SqlObject, cascade: bool = True) -> str:
    """DROP statement used to tear down an object the run created."""
    statement = f"DROP {obj.kind.value.upper()} IF EXISTS {quote_ident(obj.name)}"
    return statement + " CASCADE" if cascade else statement
