"""
Relay configuration for replrelay.

This module defines the configuration dataclass for the relay server,
providing a centralized place for all configurable parameters.

A RelayConfig is built by the CLI from its arguments and handed to the
RelayServer; there is no config file and no environment lookup.

Usage:
    from replrelay.relay.config import RelayConfig

    config = RelayConfig(HOST_ADDRESS="localhost", HOST_PORT=5555)
    config.LOCAL_PORT = 6000
"""

from dataclasses import dataclass

from replrelay.models.enums import LogLevel

DEFAULT_LOCAL_ADDRESS = "127.0.0.1"
DEFAULT_LOCAL_PORT = 5555


# =============================================================================
# Configuration Dataclass
# =============================================================================


@dataclass
class RelayConfig:
    """
    Relay server configuration.

    Attributes:
        HOST_ADDRESS: Hostname or IP of the interactive service to dial.
        HOST_PORT: Port of the interactive service.
        LOCAL_ADDRESS: Local address the listener binds to.
        LOCAL_PORT: Local port the listener binds to (0 picks a free port).
        BUFFER_SIZE: Maximum bytes moved per read in each relay direction.
        RETRY_INTERVAL_SECONDS: Backoff between failed dial attempts.
        CONNECT_TIMEOUT_SECONDS: Upper bound for a single dial attempt.
        QUIT_KEY: Keypress that shuts the relay down (case-insensitive).
        LOG_LEVEL: Logging verbosity level.
        LOG_FILE: Optional log file path.
    """

    # -------------------------------------------------------------------------
    # Network Configuration
    # -------------------------------------------------------------------------

    HOST_ADDRESS: str = "127.0.0.1"
    HOST_PORT: int = 5555
    LOCAL_ADDRESS: str = DEFAULT_LOCAL_ADDRESS
    LOCAL_PORT: int = DEFAULT_LOCAL_PORT

    # -------------------------------------------------------------------------
    # Relay Configuration
    # -------------------------------------------------------------------------

    BUFFER_SIZE: int = 4096

    # -------------------------------------------------------------------------
    # Timing Configuration
    # -------------------------------------------------------------------------

    RETRY_INTERVAL_SECONDS: float = 1.0
    CONNECT_TIMEOUT_SECONDS: float = 15.0

    # -------------------------------------------------------------------------
    # Interactive Control
    # -------------------------------------------------------------------------

    QUIT_KEY: str = "q"

    # -------------------------------------------------------------------------
    # Logging Configuration
    # -------------------------------------------------------------------------

    LOG_LEVEL: LogLevel = LogLevel.INFO
    LOG_FILE: str = ""

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def get_host_endpoint(self) -> str:
        """Get the host endpoint as ``address:port``."""
        return f"{self.HOST_ADDRESS}:{self.HOST_PORT}"

    def get_local_endpoint(self) -> str:
        """Get the listener endpoint as ``address:port``."""
        return f"{self.LOCAL_ADDRESS}:{self.LOCAL_PORT}"
