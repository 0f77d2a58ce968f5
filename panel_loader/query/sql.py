"""Predicate injection for SQL panel queries.

Ad-hoc filters are applied to SQL panels by adding ``column <op> 'value'``
predicates to the top-level ``WHERE`` clause. A ``WHERE`` is created when
the query has none, placed before any ``GROUP BY``/``HAVING``/``ORDER BY``/
``LIMIT``/``OFFSET``. A simple predicate already comparing the same column
(a binary comparison or an ``IN (...)`` list) is replaced in place, so a
filter never appears twice. Only the outermost query is rewritten;
sub-selects in parentheses are left alone.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Tuple

from ..domain.models import AdHocFilter

logger = logging.getLogger(__name__)

_CLAUSE_RE = re.compile(
    r"\b(where|group\s+by|having|order\s+by|limit|offset)\b", re.IGNORECASE
)
_OR_RE = re.compile(r"\bor\b", re.IGNORECASE)
_COMPARISON_OPS = r"(?:=~|!~|!=|<>|>=|<=|=|>|<|\bnot\s+like\b|\blike\b)"
_LITERAL = r"(?:'(?:[^']|'')*'|\"[^\"]*\"|[^\s()]+)"
_IN_LIST = r"(?:\bnot\s+)?\bin\s*\([^()]*\)"


def quote_literal(value: str) -> str:
    """Return ``value`` as a single-quoted SQL string literal."""
    return "'" + str(value).replace("'", "''") + "'"


def build_predicate(name: str, operator: str, value: str) -> str:
    """Render one filter as a SQL predicate."""
    return f"{name} {operator} {quote_literal(value)}"


def add_labels_to_sql(query: str, filters: Iterable[AdHocFilter]) -> str:
    """Inject ad-hoc filters into the top-level ``WHERE`` clause of ``query``.

    Parameters
    ----------
    query: str
        SQL text of one sub-query.
    filters: Iterable[AdHocFilter]
        Complete filters (name, operator and value set).

    Returns
    -------
    str
        The rewritten query; a trailing semicolon is dropped.

    Examples
    --------
    >>> f = AdHocFilter(name="k8s_namespace", operator="=", value="prod")
    >>> add_labels_to_sql('SELECT count(*) FROM "logs" GROUP BY host', [f])
    'SELECT count(*) FROM "logs" WHERE k8s_namespace = \\'prod\\' GROUP BY host'
    """
    sql = query.rstrip().rstrip(";").rstrip()
    filters = [f for f in filters if f.is_complete]
    if not filters:
        return query

    clauses = _top_level_clauses(sql)
    where = next((c for c in clauses if c[2] == "where"), None)

    if where is None:
        insert_at = clauses[0][0] if clauses else len(sql)
        condition = " AND ".join(
            build_predicate(f.name, f.operator, f.value)  # type: ignore[arg-type]
            for f in filters
        )
        head = sql[:insert_at].rstrip()
        tail = sql[insert_at:]
        rewritten = f"{head} WHERE {condition}" + (f" {tail}" if tail else "")
    else:
        start, body_start, _ = where
        following = [c for c in clauses if c[0] > start]
        body_end = following[0][0] if following else len(sql)
        condition = sql[body_start:body_end].strip()
        for flt in filters:
            condition = _merge_predicate(condition, flt)
        tail = sql[body_end:]
        rewritten = f"{sql[:start]}WHERE {condition}" + (f" {tail}" if tail else "")

    logger.debug(
        "sql.predicates_injected",
        extra={"filters": len(filters), "changed": rewritten != query},
    )
    return rewritten


def _merge_predicate(condition: str, flt: AdHocFilter) -> str:
    predicate = build_predicate(flt.name, flt.operator, flt.value)  # type: ignore[arg-type]
    existing = _existing_predicate(condition, flt.name or "")
    if existing is not None:
        start, end = existing
        return condition[:start] + predicate + condition[end:]
    if _has_top_level(condition, _OR_RE):
        condition = f"({condition})"
    return f"{condition} AND {predicate}"


def _existing_predicate(condition: str, column: str) -> Optional[Tuple[int, int]]:
    """Locate ``column <op> literal`` or ``column [NOT] IN (...)`` in ``condition``."""
    pattern = re.compile(
        r'(?<![\w."])"?' + re.escape(column) + r'"?\s*'
        + r"(?:" + _COMPARISON_OPS + r"\s*" + _LITERAL + r"|" + _IN_LIST + r")",
        re.IGNORECASE,
    )
    # identifiers may be double-quoted, so only string literals are masked
    masked = _mask_strings(condition, quotes="'")
    m = pattern.search(masked)
    if m is None:
        return None
    return m.start(), m.end()


def _top_level_clauses(sql: str) -> List[Tuple[int, int, str]]:
    """Return ``(start, end, keyword)`` for clause keywords at depth 0."""
    masked = _mask_nested(_mask_strings(sql))
    found = []
    for m in _CLAUSE_RE.finditer(masked):
        keyword = re.sub(r"\s+", " ", m.group(1).lower())
        found.append((m.start(), m.end(), keyword))
    return found


def _has_top_level(condition: str, pattern: re.Pattern) -> bool:
    return bool(pattern.search(_mask_nested(_mask_strings(condition))))


def _mask_strings(text: str, quotes: str = "'\"") -> str:
    """Replace the contents of quoted literals with spaces, keeping offsets."""
    out = list(text)
    i = 0
    while i < len(text):
        ch = text[i]
        if ch in quotes:
            j = i + 1
            while j < len(text):
                if text[j] == ch:
                    if ch == "'" and j + 1 < len(text) and text[j + 1] == "'":
                        j += 2
                        continue
                    break
                j += 1
            for k in range(i + 1, min(j, len(text))):
                out[k] = " "
            i = j + 1
            continue
        i += 1
    return "".join(out)


def _mask_nested(text: str) -> str:
    """Blank out everything inside parentheses, keeping offsets."""
    out = list(text)
    depth = 0
    for i, ch in enumerate(text):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(depth - 1, 0)
        elif depth > 0:
            out[i] = " "
    return "".join(out)
