"""Tool-call request/result types and the handler base class.

Each registered function is a closed variant: a handler subclass with its
own pydantic argument model. Arguments are validated against that model
before any external request is made, and every outcome is returned as a
ToolCallResult rather than raised.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, ValidationError

logger = logging.getLogger(__name__)


class ErrorCode:
    """Machine-readable error categories carried on failed results."""

    UNKNOWN_FUNCTION = "unknown_function"
    INVALID_ARGUMENTS = "invalid_arguments"
    UNAVAILABLE = "unavailable"
    INVALID_RESPONSE = "invalid_response"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"


@dataclass(frozen=True)
class ToolCallRequest:
    """Function call emitted by the agent.

    Attributes:
        function_name: Registered function to invoke
        arguments: Function-specific arguments (validated by the handler)
        tool_call_id: Transport correlation id for the reply, if any
    """

    function_name: str
    arguments: Mapping[str, Any] = field(default_factory=dict)
    tool_call_id: str | None = None


@dataclass(frozen=True)
class ToolCallResult:
    """Outcome of exactly one tool call: a payload or a structured error."""

    function_name: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    error: str | None = None
    code: str | None = None

    @classmethod
    def success(cls, function_name: str, payload: Mapping[str, Any]) -> "ToolCallResult":
        return cls(function_name=function_name, payload=dict(payload))

    @classmethod
    def failure(
        cls, function_name: str, message: str, code: str = ErrorCode.INTERNAL
    ) -> "ToolCallResult":
        return cls(function_name=function_name, error=message, code=code)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        """Reply value sent back to the agent."""
        if self.error is not None:
            return {"error": self.error}
        return dict(self.payload)


class ToolArguments(BaseModel):
    """Base for per-function argument schemas.

    Strict mode rejects values of the wrong primitive type instead of
    coercing them (e.g. a numeric ticker).
    """

    model_config = ConfigDict(strict=True, str_strip_whitespace=True, extra="ignore")


def format_validation_error(error: ValidationError) -> str:
    """Render pydantic errors as a short single line."""
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "arguments"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def _strip_titles(schema: dict[str, Any]) -> dict[str, Any]:
    schema.pop("title", None)
    for prop in schema.get("properties", {}).values():
        prop.pop("title", None)
    return schema


class ToolHandler(ABC):
    """Handler for one registered function.

    Subclasses declare the function name, a description for the agent, the
    human-readable resource name used in fetch errors, and the argument
    model; they implement ``fetch`` with exactly one external request.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    resource: ClassVar[str]
    arguments_model: ClassVar[type[ToolArguments]]

    async def __call__(self, arguments: Mapping[str, Any]) -> ToolCallResult:
        """Validate arguments, then perform the lookup.

        Args:
            arguments: Raw arguments from the agent

        Returns:
            Normalized result or structured error
        """
        try:
            args = self.arguments_model.model_validate(dict(arguments))
        except ValidationError as e:
            message = f"Invalid arguments for {self.name}: {format_validation_error(e)}"
            logger.info(
                "Tool call rejected by validation",
                extra={"function_name": self.name, "error": message},
            )
            return ToolCallResult.failure(self.name, message, ErrorCode.INVALID_ARGUMENTS)

        return await self.fetch(args)

    @abstractmethod
    async def fetch(self, args: Any) -> ToolCallResult:
        """Perform the external request for validated arguments."""

    def fetch_failed(self) -> ToolCallResult:
        """Result for a transport/network failure."""
        return ToolCallResult.failure(
            self.name, f"Couldn't fetch {self.resource}", ErrorCode.UNAVAILABLE
        )

    def invalid_response(self, message: str) -> ToolCallResult:
        """Result for a malformed or incomplete provider response."""
        return ToolCallResult.failure(self.name, message, ErrorCode.INVALID_RESPONSE)

    def definition(self) -> dict[str, Any]:
        """Tool schema advertised to the agent."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": _strip_titles(self.arguments_model.model_json_schema()),
        }
