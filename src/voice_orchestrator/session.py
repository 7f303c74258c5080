"""Session state machine and per-session context.

Owns transport-state transitions and session identity for the single
logical conversation managed by an orchestrator. On teardown it runs the
one-shot transcript flush before re-entering DISCONNECTED.

State Transitions:
- DISCONNECTED → CONNECTING (connect)
- CONNECTING → CONNECTED (transport established)
- CONNECTING → ERROR (transport failure)
- CONNECTING/CONNECTED → DISCONNECTING (disconnect or clean remote close)
- CONNECTED → ERROR (abnormal transport loss)
- DISCONNECTING → DISCONNECTED (teardown settled)
- ERROR → DISCONNECTED (always, immediately)
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from voice_orchestrator.persistence import TranscriptStore
from voice_orchestrator.transcript_buffer import TranscriptBuffer, TranscriptEntry
from voice_orchestrator.transport.base import SessionTransport, TransportListener

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Transport/session states.

    States:
    - DISCONNECTED: Initial state; also entered after every teardown
    - CONNECTING: Transport connect in progress
    - CONNECTED: Session live, transcript being captured
    - DISCONNECTING: Teardown in progress
    - ERROR: Transport failure, immediately followed by DISCONNECTED
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"
    ERROR = "error"


# Valid state transitions
VALID_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.DISCONNECTED: {SessionState.CONNECTING},
    SessionState.CONNECTING: {
        SessionState.CONNECTED,
        SessionState.DISCONNECTING,
        SessionState.ERROR,
    },
    SessionState.CONNECTED: {SessionState.DISCONNECTING, SessionState.ERROR},
    SessionState.DISCONNECTING: {SessionState.DISCONNECTED},
    SessionState.ERROR: {SessionState.DISCONNECTED},
}


class InvalidTransitionError(ValueError):
    """Transition not permitted by VALID_TRANSITIONS."""


@dataclass(frozen=True)
class StateChange:
    """Notification delivered to state subscribers.

    Attributes:
        previous: State before the transition
        current: State after the transition
        reason: Failure reason for ERROR transitions, None otherwise
        session_id: Session active at the time of the transition, if any
    """

    previous: SessionState
    current: SessionState
    reason: str | None = None
    session_id: str | None = None


@dataclass(frozen=True)
class InvalidTransition:
    """Report of a rejected connect()/disconnect() call."""

    operation: str
    state: SessionState


StateListener = Callable[[StateChange], None]
InvalidTransitionListener = Callable[[InvalidTransition], None]


@dataclass
class SessionMetrics:
    """Session activity metrics."""

    transcripts_accepted: int = 0
    transcripts_dropped: int = 0
    tool_calls: int = 0
    tool_call_errors: int = 0
    session_start_ts: float = field(default_factory=time.monotonic)
    session_end_ts: float | None = None

    def record_transcript(self, accepted: bool) -> None:
        """Record a captured transcript fragment."""
        if accepted:
            self.transcripts_accepted += 1
        else:
            self.transcripts_dropped += 1

    def record_tool_call(self, failed: bool) -> None:
        """Record a resolved tool call."""
        self.tool_calls += 1
        if failed:
            self.tool_call_errors += 1

    def finalize(self) -> None:
        """Mark session as complete and record end time."""
        self.session_end_ts = time.monotonic()

    @property
    def duration_s(self) -> float:
        return (self.session_end_ts or time.monotonic()) - self.session_start_ts


@dataclass
class SessionContext:
    """State owned by one live session.

    Created when the transport connects, destroyed when the state machine
    re-enters DISCONNECTED. The session id is never reused.
    """

    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    buffer: TranscriptBuffer = field(default_factory=TranscriptBuffer)
    metrics: SessionMetrics = field(default_factory=SessionMetrics)

    def get_metrics_summary(self) -> dict[str, str | float | int | None]:
        """Get session metrics summary for logging.

        Returns:
            Dictionary of metric names to values
        """
        return {
            "session_id": self.session_id,
            "transcripts_accepted": self.metrics.transcripts_accepted,
            "transcripts_dropped": self.metrics.transcripts_dropped,
            "tool_calls": self.metrics.tool_calls,
            "tool_call_errors": self.metrics.tool_call_errors,
            "session_duration_s": self.metrics.duration_s,
        }


class SessionStateMachine:
    """Single writer of session state.

    ``connect()`` and ``disconnect()`` are the only public state-changing
    operations. Every transition is applied synchronously and notifies all
    subscribers exactly once, in transition order, so no intermediate state
    is ever skipped. Awaiting the transport happens between transitions and
    the state is re-checked after each await.
    """

    def __init__(
        self,
        transport: SessionTransport,
        listener: TransportListener,
        store: TranscriptStore,
    ) -> None:
        """Initialize state machine.

        Args:
            transport: Transport collaborator establishing the session
            listener: Receiver of transport events for the session
            store: Persistence collaborator for the teardown flush
        """
        self.transport = transport
        self.listener = listener
        self.store = store
        self._state = SessionState.DISCONNECTED
        self._context: SessionContext | None = None
        self._subscribers: list[StateListener] = []
        self._invalid_listeners: list[InvalidTransitionListener] = []
        self._connect_task: asyncio.Task[None] | None = None
        self._pending_close: str | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def context(self) -> SessionContext | None:
        """Active session context, None unless CONNECTED or tearing down."""
        return self._context

    @property
    def session_id(self) -> str | None:
        return self._context.session_id if self._context else None

    def subscribe(self, callback: StateListener) -> Callable[[], None]:
        """Register a state-change observer.

        Returns:
            Callable that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def on_invalid_transition(self, callback: InvalidTransitionListener) -> None:
        """Register an observer for rejected connect()/disconnect() calls."""
        self._invalid_listeners.append(callback)

    def transition_state(self, new_state: SessionState, reason: str | None = None) -> None:
        """Transition to a new state with validation and notify subscribers.

        Args:
            new_state: Target state
            reason: Failure reason (ERROR transitions)

        Raises:
            InvalidTransitionError: If transition is invalid
        """
        if new_state not in VALID_TRANSITIONS[self._state]:
            raise InvalidTransitionError(
                f"Invalid state transition: {self._state.value} → {new_state.value}"
            )

        change = StateChange(
            previous=self._state,
            current=new_state,
            reason=reason,
            session_id=self.session_id,
        )
        self._state = new_state

        logger.info(
            "Session state transition",
            extra={
                "session_id": change.session_id,
                "from_state": change.previous.value,
                "to_state": change.current.value,
                "reason": reason,
            },
        )

        for callback in list(self._subscribers):
            try:
                callback(change)
            except Exception:
                logger.exception("State subscriber failed", extra={"to_state": new_state.value})

    def _report_invalid(self, operation: str) -> None:
        report = InvalidTransition(operation=operation, state=self._state)
        logger.warning(
            "Ignoring invalid session operation",
            extra={"operation": operation, "state": self._state.value},
        )
        for callback in list(self._invalid_listeners):
            try:
                callback(report)
            except Exception:
                logger.exception("Invalid-transition listener failed")

    async def connect(self) -> bool:
        """Establish a new session.

        Valid only from DISCONNECTED. On success a fresh SessionContext is
        created, the state becomes CONNECTED and the transport is started.
        On transport failure, or if the transport reports a close before
        the connect completes, the state passes through ERROR (carrying the
        reason) to DISCONNECTED.

        Returns:
            True if the session is now CONNECTED
        """
        if self._state is not SessionState.DISCONNECTED:
            self._report_invalid("connect")
            return False

        self.transition_state(SessionState.CONNECTING)
        self._pending_close = None
        task = asyncio.create_task(self.transport.connect(self.listener))
        self._connect_task = task
        try:
            await task
        except asyncio.CancelledError:
            if self._connect_task is not task:
                # superseded by disconnect()
                return False
            raise
        except Exception as e:
            if self._connect_task is task and self._state is SessionState.CONNECTING:
                await self._fail_connect(e)
            return False
        else:
            if self._connect_task is not task or self._state is not SessionState.CONNECTING:
                return False
            if self._pending_close is not None:
                await self._fail_connect(ConnectionError(self._pending_close))
                return False
        finally:
            if self._connect_task is task:
                self._connect_task = None

        self._context = SessionContext()
        self.transition_state(SessionState.CONNECTED)
        await self.transport.start()
        return True

    async def _fail_connect(self, error: Exception) -> None:
        reason = str(error) or type(error).__name__
        logger.warning("Transport connect failed", extra={"error": reason})
        self.transition_state(SessionState.ERROR, reason=reason)
        try:
            await self.transport.disconnect()
        except Exception as e:
            logger.warning("Transport cleanup after failed connect failed", extra={"error": str(e)})
        self.transition_state(SessionState.DISCONNECTED)

    async def disconnect(self) -> bool:
        """Tear the session down.

        Valid from CONNECTING or CONNECTED. The transport is told to tear
        down; whatever the outcome, the transcript is flushed once, cleared,
        and the state returns to DISCONNECTED.

        Returns:
            True if a teardown was performed
        """
        if self._state not in (SessionState.CONNECTING, SessionState.CONNECTED):
            self._report_invalid("disconnect")
            return False

        self.transition_state(SessionState.DISCONNECTING)

        task, self._connect_task = self._connect_task, None
        if task is not None and not task.done():
            task.cancel()

        try:
            await self.transport.disconnect()
        except Exception as e:
            logger.warning("Transport teardown failed", extra={"error": str(e)})
        finally:
            await self._end_session()
        return True

    async def handle_transport_closed(self, reason: str | None = None) -> None:
        """React to the transport closing on its own.

        A clean close while CONNECTED tears down through DISCONNECTING; an
        abnormal close goes through ERROR. A close reported while CONNECTING
        is held and fails that connect once the transport returns. Reports
        in other states belong to a teardown already in progress and are
        ignored.

        Args:
            reason: Failure description, None for a clean close
        """
        if self._state is SessionState.CONNECTING:
            logger.info("Transport closed during connect", extra={"reason": reason})
            self._pending_close = reason or "Connection closed during connect"
            return

        if self._state is not SessionState.CONNECTED:
            logger.debug(
                "Ignoring transport close outside CONNECTED",
                extra={"state": self._state.value, "reason": reason},
            )
            return

        if reason:
            self.transition_state(SessionState.ERROR, reason=reason)
        else:
            self.transition_state(SessionState.DISCONNECTING)

        try:
            await self.transport.disconnect()
        except Exception as e:
            logger.warning("Transport release after remote close failed", extra={"error": str(e)})
        finally:
            await self._end_session()

    def capture(self, entry: TranscriptEntry) -> TranscriptEntry | None:
        """Forward a transcript event to the active session's buffer.

        Returns:
            The stored entry, or None if dropped (no session or non-final)
        """
        context = self._context
        if context is None or self._state is not SessionState.CONNECTED:
            logger.debug(
                "Dropping transcript outside an active session",
                extra={"state": self._state.value},
            )
            return None

        stored = context.buffer.append(entry)
        context.metrics.record_transcript(stored is not None)
        return stored

    async def _end_session(self) -> None:
        """Flush and destroy the context, then enter DISCONNECTED."""
        context = self._context
        try:
            if context is not None:
                await context.buffer.flush(context.session_id, self.store)
                context.buffer.clear()
                context.metrics.finalize()
                logger.info("Session ended", extra=context.get_metrics_summary())
        finally:
            self._context = None
            self.transition_state(SessionState.DISCONNECTED)
