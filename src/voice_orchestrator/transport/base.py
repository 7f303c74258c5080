"""Transport collaborator contract.

Defines the interface a real-time transport implementation must provide to
drive a session, and the listener interface through which it delivers
lifecycle, transcript and function-call events to the orchestrator.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from voice_orchestrator.tools.base import ToolCallRequest


class TransportListener(ABC):
    """Receiver of transport events for the active session.

    The transport delivers events one at a time from its receive loop;
    ``on_function_call`` is the exception and may have several calls in
    flight concurrently.
    """

    @abstractmethod
    def on_agent_ready(self) -> None:
        """Remote agent finished bootstrapping and is ready to talk."""

    @abstractmethod
    def on_agent_transcript(self, text: str) -> None:
        """Agent utterance text (always final)."""

    @abstractmethod
    def on_participant_transcript(
        self, text: str, is_final: bool, timestamp: str | None = None
    ) -> None:
        """Participant speech recognition result.

        Args:
            text: Recognized text
            is_final: False for interim partial results
            timestamp: ISO-8601 capture instant from the transport, if any
        """

    @abstractmethod
    async def on_function_call(self, request: ToolCallRequest) -> Mapping[str, Any] | None:
        """Resolve an agent tool call.

        Returns:
            Reply value for the transport, or None when the result should be
            discarded (session already ended)
        """

    @abstractmethod
    async def on_transport_closed(self, reason: str | None = None) -> None:
        """Transport closed without a local disconnect.

        Args:
            reason: Failure description, None for a clean remote close
        """


class SessionTransport(ABC):
    """Real-time transport establishing one session with the remote agent.

    ``connect()`` only establishes the session. Events reach the listener
    once ``start()`` has been called, which the state machine does after the
    session is live, so nothing the agent sends on connect is lost.
    """

    @abstractmethod
    async def connect(self, listener: TransportListener) -> None:
        """Establish the session for ``listener``.

        Suspends until the transport is connected. Incoming events are held
        back until ``start()``.

        Raises:
            ConnectionError: If the session could not be established
        """

    async def start(self) -> None:
        """Begin delivering events to the listener given to ``connect()``."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Tear the session down.

        Safe to call when not connected or while a connect is in progress.
        """

    async def drain(self) -> None:
        """Wait for work still running on behalf of the listener to settle."""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if the session connection is still active."""
