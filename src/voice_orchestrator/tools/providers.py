"""Data-provider tool handlers.

One handler per registered function. Each validates its own argument
variant, performs exactly one request against its provider, and maps the
outcome to a ToolCallResult:

- get_weather: OpenWeather current conditions, payload passed through
- get_stock_price: Alpha Vantage GLOBAL_QUOTE, normalized to {ticker, price}
- get_exchange_rate: exchangerate-api latest rates, normalized to
  {base_currency, target_currency, rate}
"""

import logging
from typing import Any, Literal
from urllib.parse import quote

from pydantic import Field

from voice_orchestrator.config import ProviderConfig
from voice_orchestrator.http_client import (
    JSONHTTPClient,
    ProviderError,
    ProviderPayloadError,
    ProviderStatusError,
)
from voice_orchestrator.tools.base import (
    ErrorCode,
    ToolArguments,
    ToolCallResult,
    ToolHandler,
)

logger = logging.getLogger(__name__)

# OpenWeather unit systems keyed by the agent-facing format name
WEATHER_UNITS = {"celsius": "metric", "fahrenheit": "imperial"}


class WeatherArguments(ToolArguments):
    location: str = Field(..., min_length=1, description="The city, e.g., San Francisco")
    format: Literal["celsius", "fahrenheit"] = Field(
        ...,
        description="The temperature unit to use. Infer this from the user's location.",
    )


class StockPriceArguments(ToolArguments):
    ticker: str = Field(
        ..., min_length=1, description="The stock ticker symbol, e.g., AAPL for Apple."
    )


class ExchangeRateArguments(ToolArguments):
    base_currency: str = Field(..., min_length=1, description="The base currency, e.g., USD.")
    target_currency: str = Field(
        ..., min_length=1, description="The target currency, e.g., EUR."
    )


class ProviderHandler(ToolHandler):
    """Handler backed by one JSON provider endpoint."""

    def __init__(self, client: JSONHTTPClient, config: ProviderConfig) -> None:
        """Initialize handler.

        Args:
            client: Shared HTTP client
            config: Provider endpoint, credential and timeout
        """
        self.client = client
        self.config = config

    async def request(self, url: str, params: dict[str, str] | None = None) -> Any:
        """GET the provider, logging failures with handler context.

        Raises:
            ProviderError: Propagated for the caller to map
        """
        try:
            return await self.client.get_json(url, params=params, timeout_s=self.config.timeout_s)
        except ProviderError as e:
            logger.warning(
                "Provider request failed",
                extra={"function_name": self.name, "error": str(e)},
            )
            raise

    def status_failed(self, error: ProviderStatusError) -> ToolCallResult:
        return ToolCallResult.failure(
            self.name,
            f"Couldn't fetch {self.resource} (HTTP {error.status})",
            ErrorCode.UNAVAILABLE,
        )


class WeatherHandler(ProviderHandler):
    """Current weather for a location; the provider payload is returned as is."""

    name = "get_weather"
    description = (
        "Get the weather in a given location. "
        "This includes the conditions as well as the temperature."
    )
    resource = "weather"
    arguments_model = WeatherArguments

    async def fetch(self, args: WeatherArguments) -> ToolCallResult:
        params = {"q": args.location, "units": WEATHER_UNITS[args.format]}
        if self.config.api_key:
            params["appid"] = self.config.api_key

        try:
            data = await self.request(self.config.url, params)
        except ProviderStatusError as e:
            return self.status_failed(e)
        except ProviderPayloadError:
            return self.invalid_response("Invalid response from weather API")
        except ProviderError:
            return self.fetch_failed()

        if not isinstance(data, dict):
            return self.invalid_response("Invalid response from weather API")

        return ToolCallResult.success(self.name, data)


class StockPriceHandler(ProviderHandler):
    """Latest traded price for a ticker symbol."""

    name = "get_stock_price"
    description = "Fetch the stock price based on a given ticker symbol (e.g., AAPL, TSLA)."
    resource = "stock price"
    arguments_model = StockPriceArguments

    async def fetch(self, args: StockPriceArguments) -> ToolCallResult:
        params = {"function": "GLOBAL_QUOTE", "symbol": args.ticker}
        if self.config.api_key:
            params["apikey"] = self.config.api_key

        try:
            data = await self.request(self.config.url, params)
        except ProviderStatusError as e:
            return self.status_failed(e)
        except ProviderPayloadError:
            return self.invalid_response("Invalid response from Alpha Vantage API")
        except ProviderError:
            return self.fetch_failed()

        quote_data = data.get("Global Quote") if isinstance(data, dict) else None
        if not isinstance(quote_data, dict):
            return self.invalid_response("Invalid response from Alpha Vantage API")

        # Unknown symbols come back as an empty quote
        price = quote_data.get("05. price")
        if not isinstance(price, str | int | float) or isinstance(price, bool) or price == "":
            return ToolCallResult.failure(
                self.name, f"No price available for {args.ticker}", ErrorCode.NOT_FOUND
            )

        return ToolCallResult.success(self.name, {"ticker": args.ticker, "price": price})


class ExchangeRateHandler(ProviderHandler):
    """Conversion rate between two currencies."""

    name = "get_exchange_rate"
    description = "Fetch the exchange rate between two currencies (e.g., USD to EUR)."
    resource = "exchange rate"
    arguments_model = ExchangeRateArguments

    async def fetch(self, args: ExchangeRateArguments) -> ToolCallResult:
        url = f"{self.config.url.rstrip('/')}/{quote(args.base_currency, safe='')}"

        try:
            data = await self.request(url)
        except ProviderStatusError as e:
            if e.status == 404:
                return self.not_found(args)
            return self.status_failed(e)
        except ProviderPayloadError:
            return self.invalid_response("Invalid response from exchange rate API")
        except ProviderError:
            return self.fetch_failed()

        rates = data.get("rates") if isinstance(data, dict) else None
        if not isinstance(rates, dict):
            return self.invalid_response("Invalid response from exchange rate API")

        rate = rates.get(args.target_currency)
        if rate is None:
            return self.not_found(args)
        if not isinstance(rate, int | float) or isinstance(rate, bool):
            return self.invalid_response("Invalid response from exchange rate API")

        return ToolCallResult.success(
            self.name,
            {
                "base_currency": args.base_currency,
                "target_currency": args.target_currency,
                "rate": rate,
            },
        )

    def not_found(self, args: ExchangeRateArguments) -> ToolCallResult:
        return ToolCallResult.failure(
            self.name,
            f"Exchange rate for {args.base_currency} to {args.target_currency} not found",
            ErrorCode.NOT_FOUND,
        )
