"""Session orchestrator composition root.

Wires the session state machine, the tool dispatcher and the transcript
store to a transport, and exposes the event surface consumed by the UI:
state changes, accepted transcript entries, rejected operations and the
last transport error.
"""

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from voice_orchestrator.agent_config import build_connect_request
from voice_orchestrator.config import OrchestratorConfig
from voice_orchestrator.http_client import JSONHTTPClient
from voice_orchestrator.persistence import HTTPTranscriptStore, TranscriptStore
from voice_orchestrator.session import (
    InvalidTransitionListener,
    SessionState,
    SessionStateMachine,
    StateChange,
    StateListener,
)
from voice_orchestrator.tools import (
    ExchangeRateHandler,
    StockPriceHandler,
    ToolCallRequest,
    ToolDispatcher,
    WeatherHandler,
)
from voice_orchestrator.transcript_buffer import Role, TranscriptEntry, parse_timestamp
from voice_orchestrator.transport.base import SessionTransport, TransportListener
from voice_orchestrator.transport.websocket_transport import RTVIWebSocketTransport

logger = logging.getLogger(__name__)

TranscriptListener = Callable[[TranscriptEntry], None]


class SessionOrchestrator(TransportListener):
    """Drives one conversation at a time against a transport.

    Transport events are forwarded to the state machine (lifecycle and
    transcript capture) and to the dispatcher (tool calls). Tool-call results
    that resolve after their session ended are discarded.
    """

    def __init__(
        self,
        transport: SessionTransport,
        dispatcher: ToolDispatcher,
        store: TranscriptStore,
        http_client: JSONHTTPClient | None = None,
    ) -> None:
        """Initialize orchestrator.

        Args:
            transport: Transport collaborator
            dispatcher: Tool dispatcher with handlers registered
            store: Transcript persistence collaborator
            http_client: Shared HTTP client closed by ``aclose`` (optional)
        """
        self.transport = transport
        self.dispatcher = dispatcher
        self.http_client = http_client
        self.state_machine = SessionStateMachine(transport, self, store)
        self._transcript_listeners: list[TranscriptListener] = []
        self._last_error: str | None = None
        self.state_machine.subscribe(self._track_error)

    @property
    def state(self) -> SessionState:
        return self.state_machine.state

    @property
    def session_id(self) -> str | None:
        return self.state_machine.session_id

    @property
    def last_error(self) -> str | None:
        """Human-readable reason of the most recent transport failure."""
        return self._last_error

    def subscribe(self, callback: StateListener) -> Callable[[], None]:
        """Register a state-change observer."""
        return self.state_machine.subscribe(callback)

    def on_transcript(self, callback: TranscriptListener) -> None:
        """Register an observer for accepted transcript entries."""
        self._transcript_listeners.append(callback)

    def on_invalid_transition(self, callback: InvalidTransitionListener) -> None:
        """Register an observer for rejected connect()/disconnect() calls."""
        self.state_machine.on_invalid_transition(callback)

    async def connect(self) -> bool:
        """Start a session. Returns True once CONNECTED."""
        return await self.state_machine.connect()

    async def disconnect(self) -> bool:
        """End the current session, flushing its transcript."""
        return await self.state_machine.disconnect()

    def transcript(self) -> tuple[TranscriptEntry, ...]:
        """Snapshot of the current session's transcript."""
        context = self.state_machine.context
        return context.buffer.snapshot() if context else ()

    def recent_transcripts(self, count: int = 5) -> list[TranscriptEntry]:
        """Last ``count`` entries of the current session, oldest first."""
        context = self.state_machine.context
        return context.buffer.get_recent(count) if context else []

    def _track_error(self, change: StateChange) -> None:
        if change.current is SessionState.ERROR:
            self._last_error = change.reason or "Unknown error occurred"
        elif change.current is SessionState.CONNECTED:
            self._last_error = None

    # TransportListener

    def on_agent_ready(self) -> None:
        logger.info("Agent ready", extra={"session_id": self.session_id})

    def on_agent_transcript(self, text: str) -> None:
        self._capture(Role.AGENT, text, is_final=True)

    def on_participant_transcript(
        self, text: str, is_final: bool, timestamp: str | None = None
    ) -> None:
        self._capture(Role.PARTICIPANT, text, is_final, parse_timestamp(timestamp))

    def _capture(
        self, role: Role, text: str, is_final: bool, timestamp: datetime | None = None
    ) -> None:
        if not text or not text.strip():
            return

        entry = TranscriptEntry(role=role, text=text, timestamp=timestamp, is_final=is_final)
        stored = self.state_machine.capture(entry)
        if stored is None:
            return

        for callback in list(self._transcript_listeners):
            try:
                callback(stored)
            except Exception:
                logger.exception("Transcript listener failed")

    async def on_function_call(self, request: ToolCallRequest) -> Mapping[str, Any] | None:
        context = self.state_machine.context
        result = await self.dispatcher.dispatch(request)

        if context is None or self.state_machine.context is not context:
            logger.info(
                "Discarding tool result for ended session",
                extra={"function_name": request.function_name},
            )
            return None

        context.metrics.record_tool_call(result.is_error)
        return result.to_dict()

    async def on_transport_closed(self, reason: str | None = None) -> None:
        await self.state_machine.handle_transport_closed(reason)

    async def aclose(self) -> None:
        """End any active session and release network resources."""
        if self.state in (SessionState.CONNECTING, SessionState.CONNECTED):
            await self.disconnect()

        await self.transport.drain()

        if self.http_client is not None:
            await self.http_client.close()

    async def __aenter__(self) -> "SessionOrchestrator":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def build_dispatcher(config: OrchestratorConfig, client: JSONHTTPClient) -> ToolDispatcher:
    """Dispatcher with the data-provider handlers registered."""
    dispatcher = ToolDispatcher()
    dispatcher.register(WeatherHandler(client, config.providers.weather))
    dispatcher.register(StockPriceHandler(client, config.providers.stock_price))
    dispatcher.register(ExchangeRateHandler(client, config.providers.exchange_rate))
    return dispatcher


def build_orchestrator(
    config: OrchestratorConfig, transport: SessionTransport | None = None
) -> SessionOrchestrator:
    """Compose an orchestrator from configuration.

    Args:
        config: Orchestrator configuration
        transport: Transport override (defaults to the RTVI WebSocket transport)

    Returns:
        Ready-to-connect orchestrator
    """
    client = JSONHTTPClient(timeout_s=config.backend.request_timeout_s)
    dispatcher = build_dispatcher(config, client)
    store = HTTPTranscriptStore(client, config.backend.save_transcript_url)

    if transport is None:
        transport = RTVIWebSocketTransport(
            client,
            config.backend.connect_url,
            build_connect_request(config.agent, dispatcher.definitions()),
            open_timeout_s=config.backend.request_timeout_s,
        )

    logger.info(
        "Orchestrator configured",
        extra={
            "backend": config.backend.base_url,
            "functions": dispatcher.function_names,
        },
    )
    return SessionOrchestrator(transport, dispatcher, store, http_client=client)
