"""Configuration schema for the session orchestrator.

Defines Pydantic models for loading and validating orchestrator configuration
from YAML files and environment variables.
"""

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

DEFAULT_SYSTEM_PROMPT = (
    "You are a personal assistant. Your job is to assist the user by asking clear, "
    "concise, and non-redundant questions based on the task. Start the conversation "
    "by saying 'Hi, how may I help you?' Speak minimally, as your text will be "
    "converted into audio. Once the task is completed ask if the user needs help with "
    "anything else and if you are dismissed, end the conversation with a simple "
    "'Goodbye.' If you do not have access to the tools necessary, assume it to be a "
    "simulation."
)


class BackendConfig(BaseModel):
    """Backend session endpoints."""

    base_url: str = Field(
        default="http://localhost:7860/api",
        description="Base URL for the backend session endpoints",
    )
    connect_endpoint: str = Field(default="/connect", description="Session bootstrap path")
    save_transcript_endpoint: str = Field(
        default="/save-transcript",
        description="Transcript persistence path",
    )
    request_timeout_s: float = Field(
        default=10.0, gt=0, description="Timeout for backend HTTP requests"
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate URL scheme and drop trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"backend base_url must be an http(s) URL, got '{v}'")
        return v.rstrip("/")

    @field_validator("connect_endpoint", "save_transcript_endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Normalize endpoint paths to start with '/'."""
        return v if v.startswith("/") else f"/{v}"

    @property
    def connect_url(self) -> str:
        return f"{self.base_url}{self.connect_endpoint}"

    @property
    def save_transcript_url(self) -> str:
        return f"{self.base_url}{self.save_transcript_endpoint}"


class AgentConfig(BaseModel):
    """Remote agent bootstrap settings."""

    services: dict[str, str] = Field(
        default_factory=lambda: {"stt": "deepgram", "tts": "cartesia", "llm": "anthropic"},
        description="Service selection sent with the connect request",
    )
    system_prompt: str = Field(
        default=DEFAULT_SYSTEM_PROMPT,
        min_length=1,
        description="Initial system message for the agent's LLM",
    )
    run_on_config: bool = Field(
        default=True,
        description="Let the agent speak first once configured",
    )


class ProviderConfig(BaseModel):
    """External data provider endpoint."""

    url: str = Field(..., description="Provider endpoint URL")
    api_key: str | None = Field(default=None, description="Provider credential")
    timeout_s: float = Field(default=10.0, gt=0, description="Request timeout in seconds")


class WeatherProviderConfig(ProviderConfig):
    """OpenWeather current-weather endpoint."""

    url: str = Field(default="https://api.openweathermap.org/data/2.5/weather")


class StockPriceProviderConfig(ProviderConfig):
    """Alpha Vantage quote endpoint."""

    url: str = Field(default="https://www.alphavantage.co/query")


class ExchangeRateProviderConfig(ProviderConfig):
    """exchangerate-api latest-rates endpoint (base currency appended to the path)."""

    url: str = Field(default="https://api.exchangerate-api.com/v4/latest")


class ProvidersConfig(BaseModel):
    """Data providers backing the registered tools."""

    weather: WeatherProviderConfig = Field(default_factory=WeatherProviderConfig)
    stock_price: StockPriceProviderConfig = Field(default_factory=StockPriceProviderConfig)
    exchange_rate: ExchangeRateProviderConfig = Field(
        default_factory=ExchangeRateProviderConfig
    )


class OrchestratorConfig(BaseModel):
    """Root orchestrator configuration."""

    backend: BackendConfig = Field(default_factory=BackendConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate logging level name."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}, got '{v}'")
        return v.upper()

    @staticmethod
    def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
        """Overlay environment-supplied endpoint and credentials."""
        if backend_url := os.getenv("BACKEND_URL"):
            data["backend"] = {**(data.get("backend") or {}), "base_url": backend_url}

        providers = data.get("providers") or {}
        data["providers"] = providers
        if weather_key := os.getenv("OPENWEATHER_API_KEY"):
            providers["weather"] = {**(providers.get("weather") or {}), "api_key": weather_key}

        if stock_key := os.getenv("ALPHAVANTAGE_API_KEY"):
            providers["stock_price"] = {
                **(providers.get("stock_price") or {}),
                "api_key": stock_key,
            }

        if not providers:
            del data["providers"]

        if log_level := os.getenv("LOG_LEVEL"):
            data["log_level"] = log_level

        return data

    @classmethod
    def from_yaml(cls, path: Path) -> "OrchestratorConfig":
        """Load configuration from YAML file with environment variable overrides.

        Args:
            path: Path to YAML configuration file

        Returns:
            Loaded configuration

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        import yaml  # type: ignore[import-untyped]

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Configuration root must be a mapping: {path}")

        return cls.model_validate(cls._apply_env_overrides(data))

    @classmethod
    def from_yaml_with_defaults(cls, path: Path | None = None) -> "OrchestratorConfig":
        """Load configuration from YAML or use defaults if file doesn't exist.

        Args:
            path: Optional path to YAML configuration file

        Returns:
            Loaded configuration or defaults (environment overrides still apply)
        """
        if path is not None and path.exists():
            return cls.from_yaml(path)

        return cls.model_validate(cls._apply_env_overrides({}))
