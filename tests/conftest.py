# tests/conftest.py
import asyncio
import socket

import pytest
import pytest_asyncio

from replrelay.relay.config import RelayConfig


def unused_port() -> int:
    """Return a loopback port nothing is listening on right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


async def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01):
    """Poll ``predicate`` until it is true or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(interval)


async def open_stream_pair():
    """
    Open a connected loopback TCP pair.

    Returns ((reader, writer) of the dialing side, (reader, writer) of the
    accepted side).
    """
    loop = asyncio.get_running_loop()
    accepted = loop.create_future()

    def on_accept(reader, writer):
        if not accepted.done():
            accepted.set_result((reader, writer))

    server = await asyncio.start_server(on_accept, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    dialed = await asyncio.open_connection("127.0.0.1", port)
    remote = await asyncio.wait_for(accepted, timeout=5.0)
    server.close()
    return dialed, remote


class FakeReplHost:
    """
    Stand-in for the interactive service behind the relay.

    Echoes whatever it receives, optionally sends a greeting on connect, and
    records every byte it got.
    """

    def __init__(self, greeting: bytes = b""):
        self.greeting = greeting
        self.received = bytearray()
        self.writers: list[asyncio.StreamWriter] = []
        self.accepted = 0
        self.server: asyncio.AbstractServer | None = None
        self.port: int | None = None

    async def start(self, port: int = 0) -> int:
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", port)
        self.port = self.server.sockets[0].getsockname()[1]
        return self.port

    async def _handle(self, reader, writer):
        self.accepted += 1
        self.writers.append(writer)
        try:
            if self.greeting:
                writer.write(self.greeting)
                await writer.drain()
            while data := await reader.read(4096):
                self.received.extend(data)
                writer.write(data)
                await writer.drain()
        except OSError:
            pass
        finally:
            writer.close()

    @property
    def open_connections(self) -> int:
        return sum(1 for w in self.writers if not w.is_closing())

    def drop_connections(self) -> None:
        """Simulate the service going away under its clients."""
        for writer in self.writers:
            writer.transport.abort()

    async def stop(self) -> None:
        if self.server is not None:
            self.server.close()
        self.drop_connections()
        await asyncio.sleep(0)


@pytest.fixture
def make_config():
    def _make(**overrides) -> RelayConfig:
        values = dict(
            HOST_ADDRESS="127.0.0.1",
            HOST_PORT=unused_port(),
            LOCAL_ADDRESS="127.0.0.1",
            LOCAL_PORT=0,
            RETRY_INTERVAL_SECONDS=0.1,
            CONNECT_TIMEOUT_SECONDS=2.0,
        )
        values.update(overrides)
        return RelayConfig(**values)

    return _make


@pytest_asyncio.fixture
async def repl_host():
    host = FakeReplHost()
    await host.start()
    yield host
    await host.stop()
