"""Tool-call dispatch.

Routes agent function calls to registered handlers by exact name and
guarantees that every call resolves to exactly one ToolCallResult. Lookup
misses, handler faults and malformed handler returns are converted into
structured errors; nothing escapes to the caller.

The registry is populated at composition time and only read afterwards,
so concurrent dispatches share no mutable state.
"""

import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from voice_orchestrator.tools.base import (
    ErrorCode,
    ToolCallRequest,
    ToolCallResult,
    ToolHandler,
)

logger = logging.getLogger(__name__)

HandlerFn = Callable[[Mapping[str, Any]], Awaitable[ToolCallResult | Mapping[str, Any]]]


class ToolDispatcher:
    """Registry of function handlers with never-raising dispatch."""

    def __init__(self) -> None:
        self._handlers: dict[str, HandlerFn] = {}

    def register_handler(self, function_name: str, handler: HandlerFn) -> None:
        """Register a handler for a function name.

        Args:
            function_name: Exact name the agent will call
            handler: Async callable taking the raw arguments mapping

        Raises:
            ValueError: If the name is empty or already registered
        """
        if not function_name:
            raise ValueError("function_name must be non-empty")
        if function_name in self._handlers:
            raise ValueError(f"Handler already registered for {function_name}")
        self._handlers[function_name] = handler
        logger.debug("Registered tool handler", extra={"function_name": function_name})

    def register(self, handler: ToolHandler) -> None:
        """Register a ToolHandler under its declared name."""
        self.register_handler(handler.name, handler)

    @property
    def function_names(self) -> list[str]:
        return list(self._handlers)

    def definitions(self) -> list[dict[str, Any]]:
        """Tool schemas for handlers that publish one, in registration order."""
        return [
            handler.definition()
            for handler in self._handlers.values()
            if isinstance(handler, ToolHandler)
        ]

    async def dispatch(self, request: ToolCallRequest) -> ToolCallResult:
        """Resolve one tool call.

        Args:
            request: Function call from the agent

        Returns:
            Handler result, or a structured error for unknown functions and
            handler faults
        """
        name = request.function_name
        handler = self._handlers.get(name)
        if handler is None:
            logger.warning("Unknown function call", extra={"function_name": name})
            return ToolCallResult.failure(
                name, f"Unknown function: {name}", ErrorCode.UNKNOWN_FUNCTION
            )

        start = time.monotonic()
        try:
            outcome = await handler(request.arguments)
        except Exception:
            logger.exception(
                "Tool handler failed",
                extra={"function_name": name, "tool_call_id": request.tool_call_id},
            )
            return ToolCallResult.failure(name, f"Function {name} failed", ErrorCode.INTERNAL)

        result = self._normalize(name, outcome)
        logger.info(
            "Tool call completed",
            extra={
                "function_name": name,
                "tool_call_id": request.tool_call_id,
                "ok": not result.is_error,
                "latency_ms": (time.monotonic() - start) * 1000.0,
            },
        )
        return result

    @staticmethod
    def _normalize(name: str, outcome: Any) -> ToolCallResult:
        """Coerce plain-mapping handler returns into a ToolCallResult."""
        if isinstance(outcome, ToolCallResult):
            return outcome
        if isinstance(outcome, Mapping):
            error = outcome.get("error")
            if error is not None:
                return ToolCallResult.failure(name, str(error))
            return ToolCallResult.success(name, outcome)

        logger.error(
            "Tool handler returned unsupported value",
            extra={"function_name": name, "type": type(outcome).__name__},
        )
        return ToolCallResult.failure(name, f"Function {name} failed", ErrorCode.INTERNAL)
