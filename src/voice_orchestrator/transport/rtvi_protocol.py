"""RTVI message protocol definitions.

Defines Pydantic models for the RTVI JSON envelope exchanged with the
remote agent over the data channel. Every message carries the ``rtvi-ai``
label, a type, an id and a type-specific data object.
"""

import uuid
from typing import Any, Literal

from pydantic import BaseModel, Field

RTVI_LABEL = "rtvi-ai"


class RTVIMessage(BaseModel):
    """Generic RTVI envelope.

    Incoming messages are parsed into this model first; the ``data`` object
    is then validated against the model for the specific type.
    """

    label: Literal["rtvi-ai"] = RTVI_LABEL
    type: str = Field(..., min_length=1, description="Message type")
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:8])
    data: dict[str, Any] = Field(default_factory=dict)


class UserTranscriptionData(BaseModel):
    """Server → Client: participant speech recognition result."""

    text: str
    final: bool = False
    timestamp: str | None = None
    user_id: str | None = None


class BotTranscriptionData(BaseModel):
    """Server → Client: agent utterance text."""

    text: str


class LLMFunctionCallData(BaseModel):
    """Server → Client: tool call requested by the agent's LLM."""

    function_name: str = Field(..., min_length=1)
    tool_call_id: str
    args: dict[str, Any] = Field(default_factory=dict)


class LLMFunctionCallResultData(BaseModel):
    """Client → Server: tool call result."""

    function_name: str
    tool_call_id: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    result: dict[str, Any]


class ErrorData(BaseModel):
    """Server → Client: error notification."""

    error: str = "Unknown error"
    fatal: bool = False


def client_ready_message() -> RTVIMessage:
    """Client → Server: client finished setup and can receive messages."""
    return RTVIMessage(type="client-ready")


def function_call_result_message(
    call: LLMFunctionCallData, result: dict[str, Any]
) -> RTVIMessage:
    """Build the reply for one tool call."""
    data = LLMFunctionCallResultData(
        function_name=call.function_name,
        tool_call_id=call.tool_call_id,
        arguments=call.args,
        result=result,
    )
    return RTVIMessage(type="llm-function-call-result", data=data.model_dump())
