"""
Per-client connection supervisor.

Keeps one accepted client paired with a live host connection. When the host
is unreachable the supervisor keeps redialing at a fixed interval; when an
established host connection drops, it dials a fresh one and rewires both
relay directions while the client socket stays open.
"""

import asyncio
from dataclasses import dataclass, field

from replrelay.models.enums import ConnectionRole, SupervisorState
from replrelay.relay.config import RelayConfig
from replrelay.relay.connection import Connection
from replrelay.relay.exceptions import DialError, ResolutionError
from replrelay.relay.registry import SocketRegistry
from replrelay.relay.resolver import resolve_address
from replrelay.relay.stream_relay import StreamRelay
from replrelay.utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# Connection Pair
# =============================================================================


@dataclass
class ConnectionPair:
    """A client connection, its current host connection and their relays."""

    client: Connection
    host: Connection
    relays: list[StreamRelay] = field(default_factory=list)
    tasks: list[asyncio.Task] = field(default_factory=list)

    def start(self, buffer_size: int) -> None:
        """Start one relay task per direction."""
        self.relays = [
            StreamRelay(self.client, self.host, buffer_size, half_close=True),
            StreamRelay(self.host, self.client, buffer_size),
        ]
        self.tasks = [
            asyncio.create_task(relay.run(), name=f"relay {relay.name} {self.client.endpoint}")
            for relay in self.relays
        ]

    async def stop(self) -> None:
        """Cancel whichever relay is still running and wait for both."""
        for task in self.tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*self.tasks, return_exceptions=True)


# =============================================================================
# Supervisor
# =============================================================================


class ConnectionSupervisor:
    """Dial-with-retry and re-pairing loop for one client."""

    def __init__(
        self,
        client: Connection,
        config: RelayConfig,
        registry: SocketRegistry,
        shutdown_event: asyncio.Event,
    ):
        """
        Initialize supervisor.

        Args:
            client: Accepted client connection.
            config: Relay configuration (host endpoint, timings, buffer size).
            registry: Registry every dialed host connection is recorded in.
            shutdown_event: Set by the server when the relay is terminating.
        """
        self.client = client
        self.config = config
        self.registry = registry
        self._shutdown = shutdown_event

        self.state = SupervisorState.DISCONNECTED
        self.pair: ConnectionPair | None = None
        self.dial_attempts = 0
        self.connections_made = 0
        self.log_prefix = f"[Client {client.endpoint}]"

    @property
    def running(self) -> bool:
        return not self._shutdown.is_set()

    async def run(self) -> None:
        """Supervise the client until it disconnects or the relay shuts down."""
        logger.info(f"New client {self.client.endpoint}")
        try:
            while (
                self.running
                and self.client.is_connected
                and self.state != SupervisorState.CLOSED
            ):
                if self.state == SupervisorState.DISCONNECTED:
                    await self._connect_to_host()
                else:
                    await self._wait_for_disconnect()
        finally:
            await self._teardown()
            self.state = SupervisorState.CLOSED
            logger.info(f"{self.log_prefix} Session ended.")

    # -------------------------------------------------------------------------
    # DISCONNECTED state
    # -------------------------------------------------------------------------

    async def _connect_to_host(self) -> None:
        if self.client.input_closed:
            logger.info(f"{self.log_prefix} Client closed before the host was reached.")
            self.state = SupervisorState.CLOSED
            return

        try:
            host = await self._dial()
        except (ResolutionError, DialError) as e:
            logger.warning(f"{self.log_prefix} {e}")
            await self._backoff()
            return

        self.registry.add(host)
        self.pair = ConnectionPair(self.client, host)
        self.pair.start(self.config.BUFFER_SIZE)
        self.connections_made += 1
        self.state = SupervisorState.CONNECTED

    async def _dial(self) -> Connection:
        """Resolve and connect to the configured host."""
        self.dial_attempts += 1
        endpoint = self.config.get_host_endpoint()
        logger.info(
            f"{self.log_prefix} Connecting to {endpoint} "
            f"(attempt {self.dial_attempts})..."
        )

        address = await resolve_address(self.config.HOST_ADDRESS)
        port = self.config.HOST_PORT
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(address, port),
                timeout=self.config.CONNECT_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError as e:
            raise DialError(address, port, "connection timed out") from e
        except OSError as e:
            raise DialError(address, port, e.strerror or str(e)) from e
        except OverflowError as e:
            raise DialError(address, port, str(e)) from e

        host = Connection(reader, writer, ConnectionRole.HOST)
        logger.info(f"{self.log_prefix} Connected to host {host.endpoint}.")
        return host

    async def _backoff(self) -> None:
        """Sleep the retry interval, waking early on shutdown."""
        try:
            await asyncio.wait_for(
                self._shutdown.wait(), timeout=self.config.RETRY_INTERVAL_SECONDS
            )
        except asyncio.TimeoutError:
            pass

    # -------------------------------------------------------------------------
    # CONNECTED state
    # -------------------------------------------------------------------------

    async def _wait_for_disconnect(self) -> None:
        pair = self.pair
        waiters = [
            asyncio.create_task(pair.host.wait_disconnected()),
            asyncio.create_task(pair.client.wait_disconnected()),
            asyncio.create_task(self._shutdown.wait()),
        ]
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()
            await asyncio.gather(*waiters, return_exceptions=True)

        if self.running and self.client.is_connected and not pair.host.is_connected:
            if self.client.input_closed:
                # Client already sent EOF; nothing more to deliver to a new host
                logger.info(
                    f"{self.log_prefix} Host {pair.host.endpoint} closed after "
                    f"the client finished sending."
                )
                self.state = SupervisorState.CLOSED
                return
            logger.warning(
                f"{self.log_prefix} Host {pair.host.endpoint} dropped, reconnecting."
            )
            await self._release_pair()
            self.state = SupervisorState.DISCONNECTED

    # -------------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------------

    async def _release_pair(self) -> None:
        pair, self.pair = self.pair, None
        if pair is None:
            return
        await pair.stop()
        pair.host.close()
        await pair.host.wait_closed()

    async def _teardown(self) -> None:
        logger.debug(f"{self.log_prefix} Cleaning up connections.")
        await self._release_pair()
        self.client.close()
        await self.client.wait_closed()
