"""Client-side orchestrator for a real-time voice assistant session.

This module provides the session state machine, transcript capture and
flush, tool-call dispatch to external data providers, and the RTVI
transport connecting them to the remote agent.
"""

__version__ = "0.1.0"
