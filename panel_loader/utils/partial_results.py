"""
Partial results handling for fan-out calls where some operations fail.

Provides a join primitive that runs every operation concurrently, waits for
all of them to settle and returns the outcomes in submission order, so one
failing sub-query never aborts or reorders its siblings.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)


@dataclass
class FailureInfo:
    """
    Information about a failed operation.

    Attributes
    ----------
    identifier : str
        Identifier for the failed operation (e.g., "query-0")
    index : int
        Position of the operation in submission order
    error : str
        Error message
    error_type : str
        Type of error (e.g., "http_error", "timeout", "parse_error")
    exception : BaseException
        The original exception, for callers that need its payload
    """

    identifier: str
    index: int
    error: str
    error_type: str
    exception: Optional[BaseException] = field(default=None, repr=False)


@dataclass
class PartialResult:
    """
    Ordered outcome of operations that may partially fail.

    Attributes
    ----------
    results : List[Any]
        One entry per operation in submission order; ``None`` where it failed
    failures : List[FailureInfo]
        Information about failed operations, in submission order
    """

    results: List[Any] = field(default_factory=list)
    failures: List[FailureInfo] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        """Calculate success rate (0.0-1.0)."""
        if not self.results:
            return 0.0
        return (len(self.results) - len(self.failures)) / len(self.results)

    @property
    def has_failures(self) -> bool:
        """Check if any operations failed."""
        return len(self.failures) > 0

    @property
    def all_failed(self) -> bool:
        """Check if all operations failed."""
        return len(self.results) > 0 and len(self.failures) == len(self.results)


async def gather_partial(
    operations: Dict[str, Awaitable[Any]],
    operation_type: str = "operation",
) -> PartialResult:
    """
    Execute multiple async operations and collect partial results.

    All operations are scheduled before any is awaited; the call returns
    once every operation has settled.

    Parameters
    ----------
    operations : Dict[str, Awaitable[Any]]
        Ordered mapping of identifiers to async operations
    operation_type : str
        Human-readable type of operation (for logging)

    Returns
    -------
    PartialResult
        Ordered results (``None`` for failures) and failure information

    Examples
    --------
    >>> operations = {
    ...     "query-0": service.search(org, q0),
    ...     "query-1": service.search(org, q1),
    ... }
    >>> result = await gather_partial(operations, "panel_query")
    >>> result.results, [f.identifier for f in result.failures]
    """
    results = PartialResult()
    if not operations:
        return results

    tasks: Dict[str, "asyncio.Task[Any]"] = {
        identifier: asyncio.ensure_future(operation)
        for identifier, operation in operations.items()
    }

    completed = await asyncio.gather(*tasks.values(), return_exceptions=True)

    for index, (identifier, outcome) in enumerate(zip(tasks.keys(), completed)):
        if isinstance(outcome, Exception):
            error_type = _classify_error(outcome)
            results.failures.append(
                FailureInfo(
                    identifier=identifier,
                    index=index,
                    error=str(outcome),
                    error_type=error_type,
                    exception=outcome,
                )
            )
            results.results.append(None)

            logger.warning(
                f"partial_results.{operation_type}.failed",
                extra={
                    "identifier": identifier,
                    "error_type": error_type,
                    "error": str(outcome),
                },
            )
        elif isinstance(outcome, BaseException):
            # CancelledError and friends are not operation failures
            raise outcome
        else:
            results.results.append(outcome)

    logger.info(
        f"partial_results.{operation_type}.complete",
        extra={
            "total": len(operations),
            "successes": len(results.results) - len(results.failures),
            "failures": len(results.failures),
            "success_rate": results.success_rate,
        },
    )

    return results


def _classify_error(exc: Exception) -> str:
    """Classify exception into error type."""
    error_type = "unknown_error"

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status >= 500:
            error_type = "server_error"
        elif status == 429:
            error_type = "rate_limit"
        elif status in (401, 403):
            error_type = "auth_error"
        elif status == 404:
            error_type = "not_found"
        else:
            error_type = "http_error"
    elif isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        error_type = "timeout"
    elif isinstance(exc, httpx.ConnectError):
        error_type = "connection_error"
    elif isinstance(exc, ValueError):
        error_type = "parse_error"
    elif isinstance(exc, KeyError):
        error_type = "missing_field"

    return error_type
