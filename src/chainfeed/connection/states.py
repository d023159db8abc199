"""Connection state machine and the renderer-facing status."""

from __future__ import annotations

from enum import Enum, StrEnum, auto


class ConnectionState(Enum):
    """
    Lifecycle of one push connection to a node.

    State Machine Diagram
    ---------------------
    ::

        DISABLED --> CONNECTING --> CONNECTED --> DISCONNECTED
                         ^                             |
                         +-----------------------------+

    Transitions
    -----------
    DISABLED -> CONNECTING
        - Triggered when: the data source is enabled
        - Action: open the socket and subscribe, start polling

    CONNECTING -> CONNECTED
        - Triggered when: the socket opened and the subscribe request was sent

    CONNECTING -> DISCONNECTED, CONNECTED -> DISCONNECTED
        - Triggered when: the socket failed, closed, or the source was disabled

    DISCONNECTED -> CONNECTING
        - Triggered when: the fixed reconnect delay elapsed while still enabled
    """

    DISABLED = auto()
    """Initial state. The source has never been enabled."""

    CONNECTING = auto()
    """Opening the socket."""

    CONNECTED = auto()
    """Socket open, workshares are being pushed."""

    DISCONNECTED = auto()
    """
    Socket closed.

    Entered on unexpected close (a retry follows after the reconnect delay)
    and on disable (no retry).
    """

    def can_transition_to(self, target: ConnectionState) -> bool:
        """
        Check if transition to target state is valid.

        Args:
            target: The proposed target state.

        Returns:
            True if the transition is allowed by the state machine rules.
        """
        return target in _VALID_TRANSITIONS.get(self, set())

    @property
    def is_active(self) -> bool:
        """Whether a socket is being opened or is open."""
        return self in {ConnectionState.CONNECTING, ConnectionState.CONNECTED}


_VALID_TRANSITIONS: dict[ConnectionState, set[ConnectionState]] = {
    ConnectionState.DISABLED: {ConnectionState.CONNECTING},
    ConnectionState.CONNECTING: {ConnectionState.CONNECTED, ConnectionState.DISCONNECTED},
    ConnectionState.CONNECTED: {ConnectionState.DISCONNECTED},
    ConnectionState.DISCONNECTED: {ConnectionState.CONNECTING},
}
"""Valid state transitions for the connection state machine."""


class ConnectionStatus(StrEnum):
    """Coarse status shown to renderers."""

    DISCONNECTED = "Disconnected"
    CONNECTED = "Connected"
    ERROR = "Error"
