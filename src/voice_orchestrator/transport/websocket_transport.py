"""WebSocket transport speaking the RTVI protocol.

Bootstraps a session through the backend's connect endpoint, opens the
WebSocket returned by it, and maps incoming RTVI messages onto the
TransportListener interface. Tool calls are served in their own tasks so a
slow provider never blocks the receive loop.
"""

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, WebSocketException
from websockets.protocol import State

from voice_orchestrator.http_client import JSONHTTPClient, ProviderError
from voice_orchestrator.tools.base import ToolCallRequest
from voice_orchestrator.transport.base import SessionTransport, TransportListener
from voice_orchestrator.transport.rtvi_protocol import (
    BotTranscriptionData,
    ErrorData,
    LLMFunctionCallData,
    RTVIMessage,
    UserTranscriptionData,
    client_ready_message,
    function_call_result_message,
)

logger = logging.getLogger(__name__)


class RTVIWebSocketTransport(SessionTransport):
    """Client-side RTVI transport over a single WebSocket connection."""

    def __init__(
        self,
        client: JSONHTTPClient,
        connect_url: str,
        connect_request: Mapping[str, Any],
        open_timeout_s: float = 10.0,
    ) -> None:
        """Initialize transport.

        Args:
            client: HTTP client used for the bootstrap request
            connect_url: Backend connect endpoint returning ``{"ws_url": ...}``
            connect_request: Bootstrap body (services, agent config)
            open_timeout_s: WebSocket opening handshake timeout
        """
        self.client = client
        self.connect_url = connect_url
        self.connect_request = dict(connect_request)
        self.open_timeout_s = open_timeout_s

        self._ws: ClientConnection | None = None
        self._listener: TransportListener | None = None
        self._receive_task: asyncio.Task[None] | None = None
        self._pending_calls: set[asyncio.Task[None]] = set()
        self._closing = False

    @property
    def is_connected(self) -> bool:
        """Check if the session connection is still active."""
        return self._ws is not None and self._ws.state == State.OPEN

    @property
    def pending_calls(self) -> int:
        """Number of tool calls still being resolved."""
        return len(self._pending_calls)

    async def connect(self, listener: TransportListener) -> None:
        """Bootstrap the session and open the WebSocket.

        Messages from the agent are not read until ``start()``.

        Raises:
            ConnectionError: If bootstrap or the WebSocket handshake fails
        """
        self._closing = False
        self._listener = listener
        self._ws = None
        self._receive_task = None

        try:
            response = await self.client.post_json(self.connect_url, self.connect_request)
        except ProviderError as e:
            raise ConnectionError(f"Session bootstrap failed: {e}") from e

        ws_url = response.get("ws_url") if isinstance(response, dict) else None
        if not ws_url:
            raise ConnectionError("Session bootstrap response did not include ws_url")

        logger.info("Opening RTVI WebSocket", extra={"url": ws_url})
        try:
            self._ws = await connect(ws_url, open_timeout=self.open_timeout_s)
        except (OSError, TimeoutError, WebSocketException) as e:
            raise ConnectionError(f"WebSocket connection to {ws_url} failed: {e}") from e

        await self._send(client_ready_message())

    async def start(self) -> None:
        """Start the receive loop.

        Frames the agent sent since the handshake are buffered by the
        connection and delivered first.
        """
        if self._ws is None or self._receive_task is not None:
            return
        self._receive_task = asyncio.create_task(self._receive_loop(self._ws))

    async def disconnect(self) -> None:
        """Close the WebSocket and stop the receive loop.

        Outstanding tool calls are left to finish; their results are dropped
        because the connection is closed.
        """
        self._closing = True
        ws, self._ws = self._ws, None

        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                logger.warning("Error closing RTVI WebSocket", extra={"error": str(e)})

        task, self._receive_task = self._receive_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def drain(self) -> None:
        """Wait for outstanding tool calls to settle."""
        if self._pending_calls:
            await asyncio.gather(*list(self._pending_calls), return_exceptions=True)

    async def _receive_loop(self, ws: ClientConnection) -> None:
        reason: str | None = None
        try:
            async for raw in ws:
                if isinstance(raw, bytes):
                    continue
                await self._handle_message(raw)
        except ConnectionClosedError as e:
            reason = f"Connection lost: {e}"
        except ConnectionClosed:
            pass

        if self._closing or self._listener is None:
            return

        logger.info("RTVI WebSocket closed by remote", extra={"reason": reason})
        await self._listener.on_transport_closed(reason)

    async def _handle_message(self, raw: str) -> None:
        """Map one RTVI message to listener callbacks."""
        listener = self._listener
        if listener is None:
            return

        try:
            message = RTVIMessage.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Ignoring malformed RTVI message", extra={"error": str(e)})
            return

        try:
            if message.type == "bot-ready":
                listener.on_agent_ready()
            elif message.type == "bot-transcription":
                bot = BotTranscriptionData.model_validate(message.data)
                listener.on_agent_transcript(bot.text)
            elif message.type == "user-transcription":
                user = UserTranscriptionData.model_validate(message.data)
                listener.on_participant_transcript(user.text, user.final, user.timestamp)
            elif message.type == "llm-function-call":
                call = LLMFunctionCallData.model_validate(message.data)
                task = asyncio.create_task(self._answer_function_call(listener, call))
                self._pending_calls.add(task)
                task.add_done_callback(self._pending_calls.discard)
            elif message.type == "error":
                error = ErrorData.model_validate(message.data)
                logger.warning(
                    "Agent reported error",
                    extra={"error": error.error, "fatal": error.fatal},
                )
            else:
                logger.debug("Unhandled RTVI message", extra={"type": message.type})
        except ValidationError as e:
            logger.warning(
                "Ignoring RTVI message with invalid data",
                extra={"type": message.type, "error": str(e)},
            )

    async def _answer_function_call(
        self, listener: TransportListener, call: LLMFunctionCallData
    ) -> None:
        request = ToolCallRequest(
            function_name=call.function_name,
            arguments=call.args,
            tool_call_id=call.tool_call_id,
        )
        try:
            reply = await listener.on_function_call(request)
        except Exception:
            logger.exception(
                "Function call handler failed",
                extra={"function_name": call.function_name},
            )
            reply = {"error": f"Function {call.function_name} failed"}

        if reply is None:
            return
        if not self.is_connected:
            logger.info(
                "Dropping function call result after close",
                extra={"function_name": call.function_name, "tool_call_id": call.tool_call_id},
            )
            return

        await self._send(function_call_result_message(call, dict(reply)))

    async def _send(self, message: RTVIMessage) -> None:
        """Send an RTVI message if the connection is open."""
        ws = self._ws
        if ws is None:
            return

        try:
            await ws.send(message.model_dump_json())
        except ConnectionClosed as e:
            logger.warning(
                "Failed to send RTVI message",
                extra={"type": message.type, "error": str(e)},
            )
