"""
replrelay CLI entry point.

Usage:
    replrelay [OPTIONS] HOSTADDR HOSTPORT [LOCALADDR [LOCALPORT]]

Listens on LOCALADDR:LOCALPORT (default 127.0.0.1:5555) and relays every
client to HOSTADDR:HOSTPORT, redialing the host whenever it goes away.
Press Q to quit.
"""

import asyncio
import signal
from typing import Annotated

import typer

from replrelay.cli.keypress import QuitKeyWatcher
from replrelay.cli.output import console, print_error, print_success
from replrelay.models.enums import LogLevel
from replrelay.relay.config import (
    DEFAULT_LOCAL_ADDRESS,
    DEFAULT_LOCAL_PORT,
    RelayConfig,
)
from replrelay.relay.exceptions import ListenerError
from replrelay.relay.server import RelayServer
from replrelay.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)

USAGE = "replrelay HOSTADDR HOSTPORT [LOCALADDR [LOCALPORT]]"

app = typer.Typer(
    name="replrelay",
    help="Reconnecting pass-through TCP relay for REPLs and other socket services",
    add_completion=False,
    rich_markup_mode="rich",
)


def print_usage() -> None:
    console.print(f"Usage: {USAGE}")


def build_config(
    host_address: str,
    host_port: int,
    local_address: str | None = None,
    local_port: int | None = None,
    **overrides,
) -> RelayConfig:
    """Build the relay configuration; omitted local values fall back to defaults."""
    return RelayConfig(
        HOST_ADDRESS=host_address,
        HOST_PORT=host_port,
        LOCAL_ADDRESS=local_address or DEFAULT_LOCAL_ADDRESS,
        LOCAL_PORT=local_port if local_port is not None else DEFAULT_LOCAL_PORT,
        **overrides,
    )


async def _serve(config: RelayConfig, watch_keys: bool) -> int:
    """Run the relay until terminated. Returns the process exit code."""
    server = RelayServer(config)
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, server.terminate)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handler support
            pass

    watcher = QuitKeyWatcher(server.terminate, config.QUIT_KEY) if watch_keys else None
    if watcher and watcher.start():
        console.print(f"[dim]Press {config.QUIT_KEY.upper()} to quit.[/dim]")

    exit_code = 0
    try:
        await server.listen()
    except ListenerError as e:
        print_error(str(e))
        console.print("Quitting")
        exit_code = 1
    finally:
        if watcher:
            watcher.stop()
        server.terminate()
        try:
            await server.wait_closed(timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Some sessions did not finish within 5s.")
    return exit_code


def run_relay(config: RelayConfig, watch_keys: bool = True) -> int:
    """Configure logging and run the relay on a fresh event loop."""
    configure_logging(config.LOG_LEVEL, config.LOG_FILE or None)
    console.print(
        f"[bold green]Relaying[/bold green] "
        f"[cyan]{config.get_local_endpoint()}[/cyan] "
        f"[dim]→[/dim] "
        f"[yellow]{config.get_host_endpoint()}[/yellow]"
    )
    try:
        exit_code = asyncio.run(_serve(config, watch_keys))
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")
        return 0
    if exit_code == 0:
        print_success("Relay stopped.")
    return exit_code


@app.command(
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def relay(
    ctx: typer.Context,
    host_address: Annotated[
        str | None,
        typer.Argument(metavar="HOSTADDR", help="Address of the service to relay to"),
    ] = None,
    host_port: Annotated[
        int | None,
        typer.Argument(
            metavar="HOSTPORT", min=1, max=65535, help="Port of the service to relay to"
        ),
    ] = None,
    local_address: Annotated[
        str | None,
        typer.Argument(
            metavar="LOCALADDR",
            help=f"Local address to listen on (default: {DEFAULT_LOCAL_ADDRESS})",
        ),
    ] = None,
    local_port: Annotated[
        int | None,
        typer.Argument(
            metavar="LOCALPORT",
            min=0,
            max=65535,
            help=f"Local port to listen on (default: {DEFAULT_LOCAL_PORT})",
        ),
    ] = None,
    log_level: Annotated[
        LogLevel,
        typer.Option("--log-level", "-L", help="Logging verbosity"),
    ] = LogLevel.INFO,
    log_file: Annotated[
        str | None,
        typer.Option("--log-file", help="Also write logs to this file"),
    ] = None,
    retry_interval: Annotated[
        float,
        typer.Option("--retry-interval", min=0.0, help="Seconds between dial attempts"),
    ] = 1.0,
    connect_timeout: Annotated[
        float,
        typer.Option("--connect-timeout", min=0.1, help="Seconds before a dial attempt fails"),
    ] = 15.0,
    quit_key: Annotated[
        bool,
        typer.Option("--quit-key/--no-quit-key", help="Quit when Q is pressed"),
    ] = True,
):
    """
    Relay local connections to HOSTADDR:HOSTPORT.

    Each client gets its own host connection; if the host goes away the
    relay keeps redialing while the client stays connected.
    """
    # Wrong argument count prints usage and still exits 0
    if host_address is None or host_port is None or ctx.args:
        print_usage()
        raise typer.Exit(0)

    config = build_config(
        host_address,
        host_port,
        local_address,
        local_port,
        LOG_LEVEL=log_level,
        LOG_FILE=log_file or "",
        RETRY_INTERVAL_SECONDS=retry_interval,
        CONNECT_TIMEOUT_SECONDS=connect_timeout,
    )
    exit_code = run_relay(config, watch_keys=quit_key)
    raise typer.Exit(exit_code)


def main():
    """Entry point for the replrelay command."""
    app()


if __name__ == "__main__":
    main()
