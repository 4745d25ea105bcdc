"""
Connection wrapper shared by supervisors, relays and the registry.

A Connection is one established TCP stream (asyncio reader/writer pair) plus
the bookkeeping the relay needs: which side it is on, who the peer is, and
whether it is still usable.
"""

import asyncio
import socket

from replrelay.models.enums import ConnectionRole
from replrelay.utils.logger import get_logger

logger = get_logger(__name__)


def format_endpoint(sockname) -> str:
    """Format a socket address tuple as ``address:port``."""
    if isinstance(sockname, tuple) and len(sockname) >= 2:
        return f"{sockname[0]}:{sockname[1]}"
    return str(sockname)


class Connection:
    """One side of a relayed session."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        role: ConnectionRole,
    ):
        """
        Wrap an established stream.

        Args:
            reader: AsyncIO stream reader.
            writer: AsyncIO stream writer.
            role: Whether this is the client or host side.
        """
        self.reader = reader
        self.writer = writer
        self.role = role
        self.endpoint = format_endpoint(writer.get_extra_info("peername"))
        self._disconnected = asyncio.Event()
        self._input_closed = False

    def __repr__(self) -> str:
        state = "connected" if self.is_connected else "disconnected"
        return f"<Connection {self.role.value} {self.endpoint} {state}>"

    @property
    def is_connected(self) -> bool:
        """
        Whether the connection is still usable.

        A peer that half-closed (sent EOF but still reads) stays connected;
        see :attr:`input_closed`.
        """
        if self._disconnected.is_set():
            return False
        if self.writer.is_closing():
            return False
        return self.reader.exception() is None

    @property
    def input_closed(self) -> bool:
        """Whether the peer has finished sending and everything was read."""
        return self._input_closed or self.reader.at_eof()

    def mark_input_closed(self) -> None:
        self._input_closed = True

    def mark_disconnected(self) -> None:
        """Flag the connection as dead and wake anything waiting on it."""
        self._disconnected.set()

    async def wait_disconnected(self) -> None:
        """Block until the connection is marked disconnected."""
        await self._disconnected.wait()

    def close(self) -> None:
        """Mark disconnected and close the transport gracefully."""
        self.mark_disconnected()
        if not self.writer.is_closing():
            self.writer.close()

    def shutdown(self) -> None:
        """
        Force the connection down.

        Shuts the socket down in both directions, then aborts the transport.
        Any task blocked reading this connection sees EOF.
        """
        self.mark_disconnected()
        sock = self.writer.get_extra_info("socket")
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                # Peer already gone or socket already closed
                pass
        self.writer.transport.abort()

    async def wait_closed(self, timeout: float = 1.0) -> None:
        """Wait for the transport to finish closing."""
        try:
            await asyncio.wait_for(self.writer.wait_closed(), timeout=timeout)
        except (OSError, asyncio.TimeoutError):
            pass
