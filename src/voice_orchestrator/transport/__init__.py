"""Transport layer for the remote agent session.

Provides the transport collaborator contract and the RTVI WebSocket
implementation.
"""

from voice_orchestrator.transport.base import SessionTransport, TransportListener
from voice_orchestrator.transport.websocket_transport import RTVIWebSocketTransport

__all__ = [
    "SessionTransport",
    "TransportListener",
    "RTVIWebSocketTransport",
]
