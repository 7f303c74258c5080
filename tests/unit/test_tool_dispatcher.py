"""Unit tests for tool-call dispatch.

Tests name routing, fault isolation, result normalization and concurrent
dispatch through the registry.
"""

import asyncio
from collections.abc import Mapping
from typing import Any
from unittest.mock import AsyncMock

import pytest
from pydantic import Field

from voice_orchestrator.tools import (
    ErrorCode,
    ToolArguments,
    ToolCallRequest,
    ToolCallResult,
    ToolDispatcher,
    ToolHandler,
)


class EchoArguments(ToolArguments):
    value: str = Field(..., min_length=1, description="Value to echo")


class EchoHandler(ToolHandler):
    """Handler returning its argument, used to exercise the base class."""

    name = "echo"
    description = "Echo a value back."
    resource = "echo"
    arguments_model = EchoArguments

    def __init__(self) -> None:
        self.fetch_calls = 0

    async def fetch(self, args: EchoArguments) -> ToolCallResult:
        self.fetch_calls += 1
        return ToolCallResult.success(self.name, {"value": args.value})


@pytest.fixture
def dispatcher() -> ToolDispatcher:
    return ToolDispatcher()


# ============================================================================
# Registry Tests
# ============================================================================


class TestRegistry:
    """Test suite for handler registration."""

    def test_register_handler(self, dispatcher: ToolDispatcher) -> None:
        dispatcher.register(EchoHandler())
        assert dispatcher.function_names == ["echo"]

    def test_duplicate_name_rejected(self, dispatcher: ToolDispatcher) -> None:
        dispatcher.register(EchoHandler())
        with pytest.raises(ValueError, match="already registered"):
            dispatcher.register(EchoHandler())

    def test_empty_name_rejected(self, dispatcher: ToolDispatcher) -> None:
        with pytest.raises(ValueError, match="non-empty"):
            dispatcher.register_handler("", AsyncMock())

    def test_definitions_only_for_tool_handlers(self, dispatcher: ToolDispatcher) -> None:
        dispatcher.register(EchoHandler())
        dispatcher.register_handler("raw", AsyncMock(return_value={}))

        definitions = dispatcher.definitions()

        assert len(definitions) == 1
        definition = definitions[0]
        assert definition["name"] == "echo"
        assert definition["description"] == "Echo a value back."
        schema = definition["input_schema"]
        assert schema["type"] == "object"
        assert schema["required"] == ["value"]
        assert schema["properties"]["value"]["description"] == "Value to echo"
        assert "title" not in schema
        assert "title" not in schema["properties"]["value"]


# ============================================================================
# Dispatch Tests
# ============================================================================


class TestDispatch:
    """Test suite for dispatch()."""

    @pytest.mark.asyncio
    async def test_unknown_function(self, dispatcher: ToolDispatcher) -> None:
        result = await dispatcher.dispatch(ToolCallRequest("get_horoscope", {"sign": "leo"}))

        assert result.is_error
        assert result.error == "Unknown function: get_horoscope"
        assert result.code == ErrorCode.UNKNOWN_FUNCTION
        assert result.to_dict() == {"error": "Unknown function: get_horoscope"}

    @pytest.mark.asyncio
    async def test_routes_to_handler(self, dispatcher: ToolDispatcher) -> None:
        handler = EchoHandler()
        dispatcher.register(handler)

        result = await dispatcher.dispatch(ToolCallRequest("echo", {"value": "hi"}))

        assert not result.is_error
        assert result.to_dict() == {"value": "hi"}
        assert handler.fetch_calls == 1

    @pytest.mark.asyncio
    async def test_invalid_arguments_skip_fetch(self, dispatcher: ToolDispatcher) -> None:
        handler = EchoHandler()
        dispatcher.register(handler)

        result = await dispatcher.dispatch(ToolCallRequest("echo", {"value": 42}))

        assert result.code == ErrorCode.INVALID_ARGUMENTS
        assert result.error is not None
        assert result.error.startswith("Invalid arguments for echo:")
        assert handler.fetch_calls == 0

    @pytest.mark.asyncio
    async def test_missing_arguments(self, dispatcher: ToolDispatcher) -> None:
        dispatcher.register(EchoHandler())

        result = await dispatcher.dispatch(ToolCallRequest("echo"))

        assert result.code == ErrorCode.INVALID_ARGUMENTS
        assert "value" in (result.error or "")

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_failure(self, dispatcher: ToolDispatcher) -> None:
        dispatcher.register_handler("explode", AsyncMock(side_effect=RuntimeError("boom")))

        result = await dispatcher.dispatch(ToolCallRequest("explode"))

        assert result.error == "Function explode failed"
        assert result.code == ErrorCode.INTERNAL

    @pytest.mark.asyncio
    async def test_mapping_return_normalized(self, dispatcher: ToolDispatcher) -> None:
        dispatcher.register_handler("plain", AsyncMock(return_value={"answer": 42}))

        result = await dispatcher.dispatch(ToolCallRequest("plain"))

        assert isinstance(result, ToolCallResult)
        assert result.payload == {"answer": 42}
        assert not result.is_error

    @pytest.mark.asyncio
    async def test_mapping_error_return_normalized(self, dispatcher: ToolDispatcher) -> None:
        dispatcher.register_handler("plain", AsyncMock(return_value={"error": "nope"}))

        result = await dispatcher.dispatch(ToolCallRequest("plain"))

        assert result.is_error
        assert result.to_dict() == {"error": "nope"}

    @pytest.mark.asyncio
    async def test_unsupported_return_becomes_failure(self, dispatcher: ToolDispatcher) -> None:
        dispatcher.register_handler("weird", AsyncMock(return_value="a string"))

        result = await dispatcher.dispatch(ToolCallRequest("weird"))

        assert result.error == "Function weird failed"

    @pytest.mark.asyncio
    async def test_handler_receives_raw_arguments(self, dispatcher: ToolDispatcher) -> None:
        handler = AsyncMock(return_value={})
        dispatcher.register_handler("raw", handler)

        await dispatcher.dispatch(ToolCallRequest("raw", {"a": 1}, tool_call_id="call-1"))

        handler.assert_awaited_once_with({"a": 1})

    @pytest.mark.asyncio
    async def test_concurrent_dispatch_independent(self, dispatcher: ToolDispatcher) -> None:
        release = asyncio.Event()

        async def slow(arguments: Mapping[str, Any]) -> Mapping[str, Any]:
            await release.wait()
            return {"slow": True}

        async def fast(arguments: Mapping[str, Any]) -> Mapping[str, Any]:
            return {"fast": True}

        dispatcher.register_handler("slow", slow)
        dispatcher.register_handler("fast", fast)

        slow_task = asyncio.create_task(dispatcher.dispatch(ToolCallRequest("slow")))
        fast_result = await dispatcher.dispatch(ToolCallRequest("fast"))

        assert fast_result.payload == {"fast": True}
        assert not slow_task.done()

        release.set()
        slow_result = await slow_task
        assert slow_result.payload == {"slow": True}
