# tests/integration/test_relay_server.py
"""
End-to-end tests for RelayServer over real loopback sockets.

A FakeReplHost plays the interactive service; the tests connect as the
editor would and check what comes out the other side.
"""

import asyncio
import socket

import pytest

from conftest import FakeReplHost, unused_port, wait_until
from replrelay.models.enums import SupervisorState
from replrelay.relay.exceptions import ListenerError
from replrelay.relay.server import RelayServer
from replrelay.relay.supervisor import ConnectionSupervisor


async def _start_relay(config):
    server = RelayServer(config)
    listen_task = asyncio.create_task(server.listen())
    host, port = await server.wait_started(timeout=5.0)
    return server, listen_task, port


async def _stop_relay(server, listen_task):
    server.terminate()
    await asyncio.wait_for(listen_task, timeout=5.0)
    await server.wait_closed(timeout=5.0)


# ================================================================
# BYTE TRANSPARENCY
# ================================================================
@pytest.mark.asyncio
async def test_bytes_pass_through_both_directions(make_config):
    host = FakeReplHost(greeting=b"user=> ")
    await host.start()
    server, listen_task, port = await _start_relay(make_config(HOST_PORT=host.port))

    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    # host -> client before the client sends anything
    assert await asyncio.wait_for(reader.readexactly(7), timeout=5.0) == b"user=> "

    message = b"(map inc [1 2 3])\n" + bytes(range(256))
    writer.write(message)
    await writer.drain()
    echoed = await asyncio.wait_for(reader.readexactly(len(message)), timeout=5.0)

    assert echoed == message
    assert bytes(host.received) == message

    writer.close()
    await _stop_relay(server, listen_task)
    await host.stop()


@pytest.mark.asyncio
async def test_each_client_gets_its_own_host_connection(make_config, repl_host):
    server, listen_task, port = await _start_relay(make_config(HOST_PORT=repl_host.port))

    first = await asyncio.open_connection("127.0.0.1", port)
    second = await asyncio.open_connection("127.0.0.1", port)
    await wait_until(lambda: repl_host.accepted == 2)

    first[1].write(b"one")
    second[1].write(b"two")
    assert await asyncio.wait_for(first[0].readexactly(3), timeout=5.0) == b"one"
    assert await asyncio.wait_for(second[0].readexactly(3), timeout=5.0) == b"two"
    assert len(server.sessions) == 2

    first[1].close()
    second[1].close()
    await _stop_relay(server, listen_task)


@pytest.mark.asyncio
async def test_half_closed_client_still_receives_reply(make_config):
    """A client may send its input, close its write side and wait for output."""

    async def answer_after_eof(reader, writer):
        request = await reader.read()
        await asyncio.sleep(0.3)
        writer.write(b"=> " + request)
        await writer.drain()
        writer.close()

    repl = await asyncio.start_server(answer_after_eof, "127.0.0.1", 0)
    repl_port = repl.sockets[0].getsockname()[1]
    server, listen_task, port = await _start_relay(make_config(HOST_PORT=repl_port))

    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(b"(+ 1 2)\n")
    writer.write_eof()

    reply = await asyncio.wait_for(reader.read(), timeout=5.0)
    assert reply == b"=> (+ 1 2)\n"
    await wait_until(lambda: not server.sessions)

    writer.close()
    repl.close()
    await _stop_relay(server, listen_task)


# ================================================================
# RECONNECTION
# ================================================================
@pytest.mark.asyncio
async def test_retries_until_host_becomes_reachable(make_config):
    host_port = unused_port()
    server, listen_task, port = await _start_relay(
        make_config(HOST_PORT=host_port, RETRY_INTERVAL_SECONDS=0.1)
    )

    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(b"(+ 1 2)\n")
    await writer.drain()
    await wait_until(lambda: server.sessions and server.sessions[0].dial_attempts >= 3)

    session = server.sessions[0]
    assert session.state == SupervisorState.DISCONNECTED

    host = FakeReplHost()
    await host.start(port=host_port)

    # Input typed while the host was down is delivered once it is up
    echoed = await asyncio.wait_for(reader.readexactly(8), timeout=5.0)
    assert echoed == b"(+ 1 2)\n"
    assert session.state == SupervisorState.CONNECTED

    writer.close()
    await _stop_relay(server, listen_task)
    await host.stop()


@pytest.mark.asyncio
async def test_dial_attempts_are_spaced_by_retry_interval(make_config, monkeypatch):
    attempts = []
    real_dial = ConnectionSupervisor._dial

    async def timed_dial(self):
        attempts.append(asyncio.get_running_loop().time())
        return await real_dial(self)

    monkeypatch.setattr(ConnectionSupervisor, "_dial", timed_dial)
    server, listen_task, port = await _start_relay(
        make_config(RETRY_INTERVAL_SECONDS=0.2)
    )

    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    await wait_until(lambda: len(attempts) >= 4)

    gaps = [later - earlier for earlier, later in zip(attempts, attempts[1:])]
    assert min(gaps) >= 0.18

    writer.close()
    await _stop_relay(server, listen_task)


@pytest.mark.asyncio
async def test_host_drop_is_repaired_without_client_reconnect(make_config, repl_host):
    server, listen_task, port = await _start_relay(make_config(HOST_PORT=repl_host.port))

    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(b"before")
    assert await asyncio.wait_for(reader.readexactly(6), timeout=5.0) == b"before"

    repl_host.drop_connections()
    await wait_until(lambda: repl_host.accepted == 2)

    writer.write(b"after")
    assert await asyncio.wait_for(reader.readexactly(5), timeout=5.0) == b"after"

    session = server.sessions[0]
    assert session.connections_made == 2
    assert session.client.is_connected

    writer.close()
    await _stop_relay(server, listen_task)


@pytest.mark.asyncio
async def test_client_disconnect_ends_session(make_config, repl_host):
    server, listen_task, port = await _start_relay(make_config(HOST_PORT=repl_host.port))

    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(b"ping")
    assert await asyncio.wait_for(reader.readexactly(4), timeout=5.0) == b"ping"

    writer.close()
    await wait_until(lambda: not server.sessions)
    await wait_until(lambda: repl_host.open_connections == 0)

    await _stop_relay(server, listen_task)


# ================================================================
# SHUTDOWN
# ================================================================
@pytest.mark.asyncio
async def test_terminate_unblocks_everything(make_config, repl_host):
    server, listen_task, port = await _start_relay(make_config(HOST_PORT=repl_host.port))

    # An idle client paired with the host, both sides blocked in read()
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    await wait_until(lambda: repl_host.accepted == 1)

    server.terminate()

    await asyncio.wait_for(listen_task, timeout=2.0)
    await server.wait_closed(timeout=2.0)
    try:
        tail = await asyncio.wait_for(reader.read(10), timeout=2.0)
    except ConnectionResetError:
        tail = b""
    assert tail == b""
    assert not server.running
    assert server.sessions == []
    assert server.registry.connected() == []
    writer.close()


@pytest.mark.asyncio
async def test_terminate_stops_supervisor_waiting_for_host(make_config):
    server, listen_task, port = await _start_relay(
        make_config(RETRY_INTERVAL_SECONDS=30.0)
    )

    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    await wait_until(lambda: server.sessions and server.sessions[0].dial_attempts >= 1)

    server.terminate()
    await asyncio.wait_for(listen_task, timeout=2.0)
    # Bounded by the forced shutdown, not by the 30s backoff
    await server.wait_closed(timeout=2.0)
    writer.close()


@pytest.mark.asyncio
async def test_terminate_is_idempotent(make_config, repl_host):
    server, listen_task, port = await _start_relay(make_config(HOST_PORT=repl_host.port))
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    await wait_until(lambda: repl_host.accepted == 1)

    server.terminate()
    server.terminate()
    await asyncio.wait_for(listen_task, timeout=2.0)
    server.terminate()
    await server.wait_closed(timeout=2.0)

    writer.close()


@pytest.mark.asyncio
async def test_terminate_before_listen_returns_immediately(make_config):
    server = RelayServer(make_config())
    server.terminate()

    await asyncio.wait_for(server.listen(), timeout=2.0)
    assert not server.running


# ================================================================
# LISTENER
# ================================================================
@pytest.mark.asyncio
async def test_listener_accepts_while_start_server_is_running(make_config, monkeypatch):
    server = RelayServer(make_config())
    running_during_bind = []
    real_start_server = asyncio.start_server

    async def recording_start_server(*args, **kwargs):
        running_during_bind.append(server.running)
        return await real_start_server(*args, **kwargs)

    monkeypatch.setattr(asyncio, "start_server", recording_start_server)
    listen_task = asyncio.create_task(server.listen())
    await server.wait_started(timeout=5.0)

    assert running_during_bind == [True]
    assert server.running
    await _stop_relay(server, listen_task)


@pytest.mark.asyncio
async def test_port_in_use_raises_listener_error(make_config):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind(("127.0.0.1", 0))
        busy.listen(1)
        busy_port = busy.getsockname()[1]

        server = RelayServer(make_config(LOCAL_PORT=busy_port))
        with pytest.raises(ListenerError) as exc_info:
            await server.listen()

    assert exc_info.value.port == busy_port
    assert not server.running
    server.terminate()


@pytest.mark.asyncio
async def test_unresolvable_listen_address_raises_listener_error(make_config):
    server = RelayServer(make_config(LOCAL_ADDRESS="no-such-host.invalid"))

    with pytest.raises(ListenerError):
        await server.listen()
