"""
Socket registry for coordinated shutdown.

Every connection the relay accepts or dials is recorded here so that a
single sweep at termination can force all of them down. Entries are weak
references: the registry never keeps a finished session alive, and it is
append-only; connections are closed in place rather than removed.
"""

import threading
import weakref

from replrelay.relay.connection import Connection
from replrelay.utils.logger import get_logger

logger = get_logger(__name__)


class SocketRegistry:
    """Append-only, thread-safe record of relay connections."""

    def __init__(self):
        self._refs: list[weakref.ref] = []
        self._lock = threading.Lock()
        self._swept = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._refs)

    def add(self, conn: Connection) -> None:
        """Record a connection."""
        with self._lock:
            self._refs.append(weakref.ref(conn))
        logger.trace(f"Registered {conn!r}")

    def live(self) -> list[Connection]:
        """Connections that are still referenced elsewhere."""
        with self._lock:
            refs = list(self._refs)
        return [conn for conn in (ref() for ref in refs) if conn is not None]

    def connected(self) -> list[Connection]:
        """Connections that still report themselves connected."""
        return [conn for conn in self.live() if conn.is_connected]

    def shutdown_all(self) -> int:
        """
        Force every connected socket down.

        Safe to call more than once; already closed connections are skipped.

        Returns:
            Number of connections shut down by this call.
        """
        count = 0
        for conn in self.connected():
            logger.debug(f"Shutting down {conn!r}")
            conn.shutdown()
            count += 1

        if not self._swept:
            self._swept = True
            logger.info(f"Closed {count} connection(s).")
        elif count:
            logger.debug(f"Closed {count} more connection(s).")
        return count
