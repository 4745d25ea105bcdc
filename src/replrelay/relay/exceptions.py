"""Relay exception classes."""


class RelayError(Exception):
    """Base exception for relay operations."""

    pass


class ResolutionError(RelayError):
    """Hostname lookup failed or returned no addresses."""

    def __init__(self, hostname: str, reason: str = "no addresses found"):
        self.hostname = hostname
        self.reason = reason
        super().__init__(f"Failed to resolve {hostname!r}: {reason}")


class DialError(RelayError):
    """Outbound connection to the host could not be established."""

    def __init__(self, address: str, port: int, reason: str):
        self.address = address
        self.port = port
        self.reason = reason
        super().__init__(f"Failed to connect to {address}:{port}: {reason}")


class ListenerError(RelayError):
    """Local listener could not bind or stopped accepting."""

    def __init__(self, address: str, port: int, reason: str):
        self.address = address
        self.port = port
        self.reason = reason
        super().__init__(f"Listener on {address}:{port} failed: {reason}")
