"""
Relay server.

Listens on the local address, hands every accepted client to its own
ConnectionSupervisor task, and owns the registry used to force all sockets
down on termination.
"""

import asyncio

from replrelay.models.enums import ConnectionRole
from replrelay.relay.config import RelayConfig
from replrelay.relay.connection import Connection, format_endpoint
from replrelay.relay.exceptions import ListenerError, ResolutionError
from replrelay.relay.registry import SocketRegistry
from replrelay.relay.resolver import resolve_address
from replrelay.relay.supervisor import ConnectionSupervisor
from replrelay.utils.logger import format_traceback, get_logger

logger = get_logger(__name__)


class RelayServer:
    """Manages the listener, the per-client supervisors and shutdown."""

    def __init__(self, config: RelayConfig, registry: SocketRegistry | None = None):
        """
        Initialize relay server.

        Args:
            config: Relay configuration.
            registry: Socket registry to record connections in (a fresh one
                is created if omitted).
        """
        self.config = config
        self.registry = registry if registry is not None else SocketRegistry()
        self.bound_address: tuple[str, int] | None = None

        self._server: asyncio.AbstractServer | None = None
        self._running = False
        self._terminated = False
        self._started = asyncio.Event()
        self._shutdown = asyncio.Event()
        self._supervisors: dict[asyncio.Task, ConnectionSupervisor] = {}

    @property
    def running(self) -> bool:
        return self._running

    @property
    def sessions(self) -> list[ConnectionSupervisor]:
        """Supervisors of the clients currently connected."""
        return list(self._supervisors.values())

    # -------------------------------------------------------------------------
    # Listener
    # -------------------------------------------------------------------------

    async def listen(self) -> None:
        """
        Bind the local endpoint and accept clients until terminated.

        Returns normally after terminate().

        Raises:
            ListenerError: If the local address cannot be resolved or bound.
        """
        logger.info(f"Listening on {self.config.get_local_endpoint()}...")

        # Clients may be accepted as soon as the socket is listening
        self._running = not self._terminated
        try:
            self._server = await self._bind(self.config.LOCAL_ADDRESS, self.config.LOCAL_PORT)
        except ListenerError:
            self._running = False
            raise

        sockname = self._server.sockets[0].getsockname()
        self.bound_address = (sockname[0], sockname[1])
        self._started.set()
        logger.info(f"Listening on {format_endpoint(sockname)} OK")

        if self._terminated:
            # terminate() ran while we were binding
            self._running = False
            self._server.close()
            return

        try:
            await self._shutdown.wait()
        finally:
            self._running = False
            self._server.close()
            try:
                await asyncio.wait_for(self._server.wait_closed(), timeout=1.0)
            except asyncio.TimeoutError:
                pass
            logger.info("Listener stopped.")

    async def _bind(self, local_address: str, local_port: int) -> asyncio.AbstractServer:
        try:
            bind_address = await resolve_address(local_address)
            return await asyncio.start_server(
                self._accept, host=bind_address, port=local_port
            )
        except ResolutionError as e:
            logger.error(f"Cannot resolve listen address: {e}")
            raise ListenerError(local_address, local_port, str(e)) from e
        except OSError as e:
            if e.errno in (98, 48):  # Address already in use (Linux 98, macOS 48)
                reason = "address already in use"
            else:
                reason = e.strerror or str(e)
            logger.error(f"Failed to bind {local_address}:{local_port}: {reason}")
            raise ListenerError(local_address, local_port, reason) from e
        except OverflowError as e:
            logger.error(f"Failed to bind {local_address}:{local_port}: {e}")
            raise ListenerError(local_address, local_port, str(e)) from e

    async def wait_started(self, timeout: float | None = None) -> tuple[str, int]:
        """Wait until the listener is bound and return the bound address."""
        await asyncio.wait_for(self._started.wait(), timeout=timeout)
        return self.bound_address

    def _accept(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Handle a newly accepted client without blocking the accept loop."""
        client = Connection(reader, writer, ConnectionRole.CLIENT)
        if not self._running:
            logger.debug(f"Rejecting {client.endpoint}: shutting down.")
            client.close()
            return

        self.registry.add(client)
        supervisor = ConnectionSupervisor(
            client, self.config, self.registry, self._shutdown
        )
        task = asyncio.create_task(supervisor.run(), name=f"supervisor {client.endpoint}")
        self._supervisors[task] = supervisor
        task.add_done_callback(self._supervisor_done)

    def _supervisor_done(self, task: asyncio.Task) -> None:
        self._supervisors.pop(task, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Supervisor {task.get_name()} failed unexpectedly: {exc}\n"
                f"{format_traceback(exc)}"
            )

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------

    def terminate(self) -> None:
        """
        Stop accepting, force every tracked socket down and stop supervisors.

        Idempotent: repeated calls only sweep sockets that are still open.
        """
        if not self._terminated:
            logger.info("Shutting down relay...")
        self._terminated = True
        self._running = False
        self._shutdown.set()

        if self._server is not None:
            self._server.close()

        self.registry.shutdown_all()

        for task in list(self._supervisors):
            if not task.done():
                task.cancel()

    async def wait_closed(self, timeout: float | None = None) -> None:
        """Wait for every supervisor task to finish."""
        tasks = list(self._supervisors)
        if not tasks:
            return
        await asyncio.wait_for(
            asyncio.gather(*tasks, return_exceptions=True), timeout=timeout
        )
