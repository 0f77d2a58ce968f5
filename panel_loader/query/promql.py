"""Label matcher injection for PromQL queries.

Ad-hoc filters are applied to metrics panels by adding a label matcher to
every vector selector in the expression. The rewrite is lexical: string
literals, range/subquery brackets, function names and grouping label lists
are copied verbatim, and only selectors (``metric``, ``metric{...}`` or a
bare ``{...}``) are touched. An existing matcher for the same label is
replaced rather than duplicated.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

logger = logging.getLogger(__name__)

_IDENT_RE = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*")
_NUMBER_RE = re.compile(r"[0-9][0-9a-zA-Z_.]*")
_MATCHER_RE = re.compile(
    r"""^\s*(?P<name>[a-zA-Z_][a-zA-Z0-9_]*|"[^"]*")\s*"""
    r"""(?P<op>=~|!~|!=|=)\s*"""
    r"""(?P<value>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*'|`[^`]*`)\s*$""",
    re.DOTALL,
)

# Followed by a parenthesised label list, not by an expression.
_GROUPING_KEYWORDS = {
    "by",
    "without",
    "on",
    "ignoring",
    "group_left",
    "group_right",
}
# May be followed by a grouping clause instead of "(".
_AGGREGATIONS = {
    "sum",
    "min",
    "max",
    "avg",
    "group",
    "stddev",
    "stdvar",
    "count",
    "count_values",
    "bottomk",
    "topk",
    "quantile",
    "limitk",
    "limit_ratio",
}
_KEYWORDS = _GROUPING_KEYWORDS | _AGGREGATIONS | {
    "and",
    "or",
    "unless",
    "bool",
    "offset",
    "atan2",
    "inf",
    "nan",
}
_QUOTES = "\"'`"


def add_label_to_promql(
    query: str, label: str, value: str, operator: str = "="
) -> str:
    """Set ``label <operator> "value"`` on every selector of ``query``.

    Parameters
    ----------
    query: str
        PromQL expression.
    label: str
        Label name to match on.
    value: str
        Label value; quotes and backslashes are escaped.
    operator: str
        One of ``=``, ``!=``, ``=~``, ``!~``.

    Returns
    -------
    str
        The rewritten expression.

    Examples
    --------
    >>> add_label_to_promql('rate(http_requests_total[5m])', "env", "prod")
    'rate(http_requests_total{env="prod"}[5m])'
    >>> add_label_to_promql('up{env="dev",job="api"}', "env", "prod")
    'up{env="prod",job="api"}'
    """
    matcher = f'{label}{operator}"{_escape(value)}"'
    out: List[str] = []
    i = 0
    n = len(query)
    while i < n:
        ch = query[i]
        if ch in _QUOTES:
            end = _skip_string(query, i)
            out.append(query[i:end])
            i = end
        elif ch == "[":
            end = _skip_balanced(query, i, "[", "]")
            out.append(query[i:end])
            i = end
        elif ch == "{":
            end = _skip_balanced(query, i, "{", "}")
            out.append(_merge_block(query[i + 1 : end - 1], label, matcher))
            i = end
        elif ch.isdigit():
            m = _NUMBER_RE.match(query, i)
            end = m.end() if m else i + 1
            out.append(query[i:end])
            i = end
        elif _IDENT_RE.match(query, i):
            ident = _IDENT_RE.match(query, i).group(0)  # type: ignore[union-attr]
            end = i + len(ident)
            nxt = _next_non_space(query, end)
            next_ch = query[nxt] if nxt < n else ""
            if ident.lower() in _GROUPING_KEYWORDS and next_ch == "(":
                # copy "by (a, b)" verbatim
                close = _skip_balanced(query, nxt, "(", ")")
                out.append(query[i:close])
                i = close
            elif ident.lower() in _KEYWORDS or next_ch == "(":
                out.append(ident)
                i = end
            elif next_ch == "{":
                close = _skip_balanced(query, nxt, "{", "}")
                out.append(ident + _merge_block(query[nxt + 1 : close - 1], label, matcher))
                i = close
            else:
                out.append(f"{ident}{{{matcher}}}")
                i = end
        else:
            out.append(ch)
            i += 1
    rewritten = "".join(out)
    logger.debug(
        "promql.label_injected",
        extra={"label": label, "operator": operator, "changed": rewritten != query},
    )
    return rewritten


def _merge_block(body: str, label: str, matcher: str) -> str:
    """Return ``{...}`` with ``matcher`` replacing or extending ``body``."""
    parts = [p for p in _split_matchers(body) if p.strip()]
    merged: List[str] = []
    replaced = False
    for part in parts:
        name = _matcher_name(part)
        if name == label:
            if not replaced:
                merged.append(matcher)
                replaced = True
            continue
        merged.append(part.strip())
    if not replaced:
        merged.append(matcher)
    return "{" + ",".join(merged) + "}"


def _matcher_name(part: str) -> Optional[str]:
    m = _MATCHER_RE.match(part)
    if not m:
        return None
    return m.group("name").strip('"')


def _split_matchers(body: str) -> List[str]:
    """Split a selector body on top-level commas, respecting quotes."""
    parts: List[str] = []
    start = 0
    i = 0
    while i < len(body):
        ch = body[i]
        if ch in _QUOTES:
            i = _skip_string(body, i)
            continue
        if ch == ",":
            parts.append(body[start:i])
            start = i + 1
        i += 1
    parts.append(body[start:])
    return parts


def _skip_string(text: str, start: int) -> int:
    """Return the index just past the string literal opening at ``start``."""
    quote = text[start]
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\" and quote != "`":
            i += 2
            continue
        if ch == quote:
            return i + 1
        i += 1
    return len(text)


def _skip_balanced(text: str, start: int, open_ch: str, close_ch: str) -> int:
    """Return the index just past the bracket matching ``text[start]``."""
    depth = 0
    i = start
    while i < len(text):
        ch = text[i]
        if ch in _QUOTES:
            i = _skip_string(text, i)
            continue
        if ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return len(text)


def _next_non_space(text: str, start: int) -> int:
    i = start
    while i < len(text) and text[i].isspace():
        i += 1
    return i


def _escape(value: str) -> str:
    return str(value).replace("\\", "\\\\").replace('"', '\\"')

