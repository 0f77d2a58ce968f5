"""Fetch attempt identifiers for log correlation.

Every fetch attempt is tagged ``<panel>#<n>``. The tag lives in a
ContextVar for the duration of the attempt, so the sub-query tasks fanned
out by ``gather_partial`` (which copy the current context) and the HTTP
client they call all log under the attempt that issued them. Outside an
attempt the id reads ``"-"``.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

NO_ATTEMPT = "-"

_attempt_id_var: ContextVar[str] = ContextVar("attempt_id", default=NO_ATTEMPT)


def format_attempt_id(panel: str, attempt: int) -> str:
    return f"{panel}#{attempt}"


@contextmanager
def attempt_scope(panel: str, attempt: int) -> Iterator[str]:
    """Tag log records with ``panel#attempt`` until the block exits.

    Scopes nest; leaving one restores the enclosing attempt id.

    Examples
    --------
    >>> with attempt_scope("cpu", 3) as attempt_id:
    ...     assert get_attempt_id() == attempt_id == "cpu#3"
    >>> get_attempt_id()
    '-'
    """
    attempt_id = format_attempt_id(panel, attempt)
    token = _attempt_id_var.set(attempt_id)
    try:
        yield attempt_id
    finally:
        _attempt_id_var.reset(token)


def get_attempt_id() -> str:
    """Return the id of the attempt in progress, or ``"-"``."""
    return _attempt_id_var.get()
