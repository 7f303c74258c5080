"""Transcript persistence collaborators.

The session flushes its transcript once at teardown through a
TranscriptStore. The HTTP implementation POSTs the batch to the backend's
save-transcript endpoint.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

from voice_orchestrator.http_client import JSONHTTPClient, ProviderError
from voice_orchestrator.transcript_buffer import TranscriptEntry

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Transcript batch could not be stored."""


class TranscriptStore(ABC):
    """Destination for a finished session's transcript."""

    @abstractmethod
    async def save(self, session_id: str, entries: Sequence[TranscriptEntry]) -> None:
        """Persist one batch of transcript entries.

        Args:
            session_id: Session that produced the entries
            entries: Entries in capture order

        Raises:
            PersistenceError: If the batch was not accepted
        """


def build_save_payload(
    session_id: str, entries: Sequence[TranscriptEntry]
) -> dict[str, object]:
    """Build the JSON body accepted by the save-transcript endpoint."""
    return {
        "session_id": session_id,
        "transcripts": [entry.to_dict() for entry in entries],
    }


class HTTPTranscriptStore(TranscriptStore):
    """Stores transcripts by POSTing ``{session_id, transcripts}`` to the backend."""

    def __init__(self, client: JSONHTTPClient, url: str) -> None:
        """Initialize store.

        Args:
            client: Shared HTTP client
            url: Full save-transcript endpoint URL
        """
        self.client = client
        self.url = url

    async def save(self, session_id: str, entries: Sequence[TranscriptEntry]) -> None:
        if not session_id:
            raise PersistenceError("session_id is required")

        try:
            await self.client.post_json(self.url, build_save_payload(session_id, entries))
        except ProviderError as e:
            raise PersistenceError(f"Transcript store rejected batch: {e}") from e
