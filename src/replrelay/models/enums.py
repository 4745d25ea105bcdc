"""
Enumeration types for replrelay.

This module defines the enumeration types used across the relay for
state tracking and configuration options.
"""

from enum import Enum


# =============================================================================
# Connection-Related Enums
# =============================================================================


class ConnectionRole(str, Enum):
    """
    Which side of the relay a connection belongs to.

    - CLIENT: Inbound socket from the editor/user side
    - HOST: Outbound socket to the interactive service (e.g. a REPL)
    """

    CLIENT = "client"
    HOST = "host"


class SupervisorState(str, Enum):
    """
    Per-client supervisor state.

    State transitions:
        DISCONNECTED -> CONNECTED (dial succeeded)
        CONNECTED -> DISCONNECTED (host dropped, redial)
        Any -> CLOSED (client gone or relay shutting down)
    """

    DISCONNECTED = "disconnected"  # No host connection, dialing with backoff
    CONNECTED = "connected"  # Host connection up, relays running
    CLOSED = "closed"  # Supervisor finished


# =============================================================================
# Configuration Enums
# =============================================================================


class LogLevel(str, Enum):
    """
    Logging verbosity levels for replrelay.

    Levels (from most to least verbose):
        - FULL: Complete trace with detailed stack information
        - DEBUG: Debug messages and above
        - INFO: Informational messages and above
        - WARNING: Only warnings and errors
    """

    FULL = "full"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
