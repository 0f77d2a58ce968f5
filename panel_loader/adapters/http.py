"""HTTP client for the query execution service.

This adapter translates the two query service operations into HTTP requests
against the observability backend. It encapsulates transport concerns (base
URL, headers, timeouts) and returns decoded JSON bodies. Failed requests are
not retried; non-2xx responses surface as :class:`httpx.HTTPStatusError`
so callers can read the backend's error payload from ``exc.response``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..utils.correlation import get_attempt_id

logger = logging.getLogger(__name__)


class HttpQueryService:
    """Query service backed by the observability HTTP API.

    Parameters
    ----------
    endpoint: str
        Base URL of the HTTP API (e.g., "http://localhost:5080").
    api_key: Optional[str]
        Optional bearer token for authenticating requests.
    timeout: int
        Request timeout in seconds for all HTTP operations.

    Attributes
    ----------
    _client: httpx.AsyncClient
        Shared async client configured with base URL, timeout, and headers.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        timeout: int = 30,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=endpoint,
            timeout=timeout,
            headers=self._headers(api_key),
            transport=transport,
        )
        logger.info(
            "query_service.init",
            extra={"endpoint": endpoint, "timeout_seconds": timeout},
        )

    @staticmethod
    def _headers(api_key: Optional[str]) -> dict:
        """Build default headers.

        Parameters
        ----------
        api_key: Optional[str]
            Bearer token to attach as an Authorization header.

        Returns
        -------
        dict
            A dictionary of HTTP headers suitable for JSON requests.
        """
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        """Send a request and return the parsed JSON body.

        Raises
        ------
        httpx.HTTPStatusError
            On non-2xx responses.
        httpx.HTTPError
            On transport errors.
        """
        logger.debug(
            "query_service.http.request",
            extra={"attempt_id": get_attempt_id(), "method": method, "path": path},
        )
        resp = await self._client.request(method, path, **kwargs)
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError:
            text = resp.text
            logger.warning(
                "query_service.http.status_error",
                extra={
                    "attempt_id": get_attempt_id(),
                    "path": path,
                    "status": resp.status_code,
                    "body_preview": text if len(text) <= 500 else text[:500] + "...",
                },
            )
            raise
        data = resp.json()
        logger.debug(
            "query_service.http.response",
            extra={
                "attempt_id": get_attempt_id(),
                "path": path,
                "status_code": resp.status_code,
            },
        )
        return data

    async def metrics_query_range(
        self, org_id: str, query: str, start_time: int, end_time: int
    ) -> Dict[str, Any]:
        """Run a PromQL range query.

        Parameters
        ----------
        org_id: str
            Organization identifier.
        query: str
            Executable PromQL expression.
        start_time, end_time: int
            Range bounds in epoch milliseconds; sent as epoch seconds.

        Returns
        -------
        Dict[str, Any]
            Response body; the series are under ``data``.
        """
        params = {
            "query": query,
            "start": start_time / 1000,
            "end": end_time / 1000,
        }
        return await self._request(
            "GET", f"/api/{org_id}/prometheus/api/v1/query_range", params=params
        )

    async def search(
        self, org_id: str, query: Dict[str, Any], page_type: Optional[str] = None
    ) -> Dict[str, Any]:
        """Run a SQL search.

        Parameters
        ----------
        org_id: str
            Organization identifier.
        query: Dict[str, Any]
            Search request: ``sql``, ``sql_mode``, ``start_time``,
            ``end_time`` and ``size``.
        page_type: Optional[str]
            Stream type of the panel (e.g., "logs", "metrics").

        Returns
        -------
        Dict[str, Any]
            Response body; the rows are under ``hits``.
        """
        params = {"type": page_type} if page_type else None
        return await self._request(
            "POST", f"/api/{org_id}/_search", params=params, json={"query": query}
        )
