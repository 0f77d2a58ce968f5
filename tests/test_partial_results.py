"""
Tests for partial results handling utilities.
"""

import asyncio

import httpx
import pytest

from panel_loader.utils.partial_results import (
    PartialResult,
    _classify_error,
    gather_partial,
)


@pytest.mark.asyncio
async def test_gather_partial_all_succeed():
    """Test gathering when all operations succeed."""

    async def success_op(value):
        await asyncio.sleep(0.01)
        return value

    operations = {
        "op1": success_op("result1"),
        "op2": success_op("result2"),
        "op3": success_op("result3"),
    }

    result = await gather_partial(operations, "test_operation")

    assert not result.has_failures
    assert not result.all_failed
    assert result.success_rate == 1.0
    assert result.results == ["result1", "result2", "result3"]


@pytest.mark.asyncio
async def test_gather_partial_keeps_submission_order():
    """Results come back in submission order regardless of finish order."""

    async def delayed(value, delay):
        await asyncio.sleep(delay)
        return value

    operations = {
        "slow": delayed("slow", 0.05),
        "fast": delayed("fast", 0.0),
    }

    result = await gather_partial(operations)

    assert result.results == ["slow", "fast"]


@pytest.mark.asyncio
async def test_gather_partial_some_fail():
    """Failures leave a None slot and do not affect siblings."""

    async def success_op(value):
        return value

    async def fail_op(msg):
        raise ValueError(msg)

    operations = {
        "op1": success_op("result1"),
        "op2": fail_op("error in op2"),
        "op3": success_op("result3"),
    }

    result = await gather_partial(operations, "test_operation")

    assert result.has_failures
    assert not result.all_failed
    assert result.results == ["result1", None, "result3"]
    assert len(result.failures) == 1
    failure = result.failures[0]
    assert failure.identifier == "op2"
    assert failure.index == 1
    assert failure.error == "error in op2"
    assert failure.error_type == "parse_error"
    assert isinstance(failure.exception, ValueError)


@pytest.mark.asyncio
async def test_gather_partial_all_fail():
    async def fail_op():
        raise KeyError("missing")

    result = await gather_partial({"a": fail_op(), "b": fail_op()})

    assert result.all_failed
    assert result.results == [None, None]
    assert result.success_rate == 0.0


@pytest.mark.asyncio
async def test_gather_partial_empty():
    result = await gather_partial({})
    assert result == PartialResult()
    assert not result.has_failures
    assert not result.all_failed


def test_classify_http_errors():
    request = httpx.Request("GET", "http://test/api")

    def status_error(code):
        return httpx.HTTPStatusError(
            "boom", request=request, response=httpx.Response(code, request=request)
        )

    assert _classify_error(status_error(500)) == "server_error"
    assert _classify_error(status_error(429)) == "rate_limit"
    assert _classify_error(status_error(403)) == "auth_error"
    assert _classify_error(status_error(404)) == "not_found"
    assert _classify_error(status_error(400)) == "http_error"
    assert _classify_error(httpx.ReadTimeout("slow", request=request)) == "timeout"
    assert _classify_error(httpx.ConnectError("down", request=request)) == (
        "connection_error"
    )
    assert _classify_error(RuntimeError("x")) == "unknown_error"
