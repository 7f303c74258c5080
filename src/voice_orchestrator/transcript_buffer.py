"""Transcript buffer for the active conversation session.

Holds the ordered log of utterances captured from both participants of a
session. Entries are appended in capture order and never re-sorted; the
buffer is flushed once to the persistence collaborator when the session
ends and then cleared.

Key features:
- Final-only filter for participant fragments (interim ASR results are dropped)
- Capture-time timestamps, monotonically non-decreasing
- Immutable snapshots that cannot alter internal state
- Best-effort, single-attempt flush with unconditional clear

Typical usage:
    buffer = TranscriptBuffer()
    buffer.append(TranscriptEntry(role=Role.AGENT, text="Hi, how may I help you?"))
    buffer.append(TranscriptEntry(role=Role.PARTICIPANT, text="I need", is_final=False))
    await buffer.flush(session_id, store)
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from voice_orchestrator.persistence import TranscriptStore

logger = logging.getLogger(__name__)


class Role(Enum):
    """Speaker of a transcript entry."""

    AGENT = "agent"
    PARTICIPANT = "participant"


@dataclass(frozen=True)
class TranscriptEntry:
    """Single utterance captured during a session.

    Attributes:
        role: Who spoke (agent or participant).
        text: Utterance text, never empty.
        timestamp: Capture instant (timezone-aware). Assigned by the buffer
            on append when omitted.
        is_final: Finality flag. Only final participant entries are durable;
            agent entries are always durable.
    """

    role: Role
    text: str
    timestamp: datetime | None = None
    is_final: bool = True

    def __post_init__(self) -> None:
        if not self.text or not self.text.strip():
            raise ValueError("Transcript entry text must be non-empty")

    @property
    def is_durable(self) -> bool:
        """Whether this entry should be kept in the session log."""
        return self.role is Role.AGENT or self.is_final

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persistence wire shape."""
        return {
            "role": self.role.value,
            "text": self.text,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "final": self.is_final,
        }


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 instant supplied by the transport.

    Unparseable values are treated as absent so the buffer assigns its own
    capture time instead.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Ignoring unparseable transcript timestamp", extra={"value": value})
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class TranscriptBuffer:
    """Append-only ordered log of utterances for one session.

    Owned by exactly one SessionContext and mutated only by the capture
    path and the flush-then-clear sequence.
    """

    def __init__(self) -> None:
        self._entries: list[TranscriptEntry] = []

    def append(self, entry: TranscriptEntry) -> TranscriptEntry | None:
        """Append an entry if it is durable.

        Non-final participant fragments are dropped silently. Agent entries
        are always accepted. The stored entry carries a timestamp that is
        never earlier than the previous entry's.

        Args:
            entry: Captured utterance.

        Returns:
            The stored entry (with its final timestamp), or None if dropped.
        """
        if not entry.is_durable:
            logger.debug(
                "Dropping non-final participant fragment",
                extra={"text_length": len(entry.text)},
            )
            return None

        timestamp = entry.timestamp or datetime.now(UTC)
        if self._entries:
            previous = self._entries[-1].timestamp
            if previous is not None and timestamp < previous:
                timestamp = previous

        stored = dataclasses.replace(entry, timestamp=timestamp)
        self._entries.append(stored)
        return stored

    def snapshot(self) -> tuple[TranscriptEntry, ...]:
        """Return an immutable ordered copy of all entries since the last clear."""
        return tuple(self._entries)

    def get_recent(self, count: int = 5) -> list[TranscriptEntry]:
        """Get the N most recent entries, oldest first.

        Args:
            count: Number of entries to return.

        Returns:
            Up to ``count`` trailing entries in capture order.
        """
        if count <= 0:
            return []
        return self._entries[-count:]

    def clear(self) -> None:
        """Remove all entries. Idempotent."""
        self._entries.clear()

    async def flush(self, session_id: str, store: TranscriptStore) -> bool:
        """Submit the accumulated transcript once, then clear.

        An empty buffer performs no network call. Failures are logged as
        warnings and never raised; the buffer is cleared either way.

        Args:
            session_id: Identifier of the session that produced the entries.
            store: Persistence collaborator.

        Returns:
            True if the batch was persisted, False if skipped or failed.
        """
        entries = self.snapshot()
        try:
            if not entries:
                logger.info(
                    "No transcripts to save, skipping flush",
                    extra={"session_id": session_id},
                )
                return False

            try:
                await store.save(session_id, entries)
            except Exception as e:
                logger.warning(
                    "Failed to save transcripts",
                    extra={"session_id": session_id, "count": len(entries), "error": str(e)},
                )
                return False

            logger.info(
                "Saved transcripts",
                extra={"session_id": session_id, "count": len(entries)},
            )
            return True
        finally:
            self.clear()

    def __len__(self) -> int:
        """Return number of entries in buffer."""
        return len(self._entries)

    def __repr__(self) -> str:
        """Return string representation of buffer."""
        return f"TranscriptBuffer(size={len(self._entries)})"
