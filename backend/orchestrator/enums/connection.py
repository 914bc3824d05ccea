"""
Streaming synthesizer connection state.

Connection state is orthogonal to agent state:
- AgentState answers: "What is the agent doing?"
- ConnectionState answers: "Can the streaming tier be used right now?"
"""

from __future__ import annotations

from enum import Enum


class ConnectionState(str, Enum):
    """
    Lifecycle of the persistent synthesis WebSocket.

    DISCONNECTED:
        No socket, no connect attempt in flight.

    CONNECTING:
        Connect attempt in flight; ensure_connected() polls until it settles.

    CONNECTED:
        Socket open and receive loop running.

    ERROR:
        Last attempt failed or the socket dropped; a reconnect may be scheduled.
    """

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    ERROR = "ERROR"
