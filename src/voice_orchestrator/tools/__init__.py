"""Tool-call handling for agent function calls.

Provides the request/result types, the handler registry and dispatcher,
and the data-provider handlers (weather, stock price, exchange rate).
"""

from voice_orchestrator.tools.base import (
    ErrorCode,
    ToolArguments,
    ToolCallRequest,
    ToolCallResult,
    ToolHandler,
)
from voice_orchestrator.tools.dispatcher import ToolDispatcher
from voice_orchestrator.tools.providers import (
    ExchangeRateHandler,
    StockPriceHandler,
    WeatherHandler,
)

__all__ = [
    "ErrorCode",
    "ToolArguments",
    "ToolCallRequest",
    "ToolCallResult",
    "ToolHandler",
    "ToolDispatcher",
    "WeatherHandler",
    "StockPriceHandler",
    "ExchangeRateHandler",
]
