"""
Relay engine: listener, per-client supervisors, stream relays and shutdown.
"""

from replrelay.relay.config import RelayConfig
from replrelay.relay.connection import Connection
from replrelay.relay.exceptions import (
    DialError,
    ListenerError,
    RelayError,
    ResolutionError,
)
from replrelay.relay.registry import SocketRegistry
from replrelay.relay.resolver import resolve_address
from replrelay.relay.server import RelayServer
from replrelay.relay.stream_relay import StreamRelay
from replrelay.relay.supervisor import ConnectionPair, ConnectionSupervisor

__all__ = [
    "Connection",
    "ConnectionPair",
    "ConnectionSupervisor",
    "DialError",
    "ListenerError",
    "RelayConfig",
    "RelayError",
    "RelayServer",
    "ResolutionError",
    "SocketRegistry",
    "StreamRelay",
    "resolve_address",
]
