"""Hostname resolution for listener and dial addresses."""

import asyncio
import socket

from replrelay.relay.exceptions import ResolutionError
from replrelay.utils.logger import get_logger

logger = get_logger(__name__)


async def resolve_address(hostname: str) -> str:
    """
    Resolve a hostname to the first address returned by the system resolver.

    Args:
        hostname: Hostname or literal IP address.

    Returns:
        The first resolved address as a string.

    Raises:
        ResolutionError: If the lookup fails or yields no addresses.
    """
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError) as e:
        raise ResolutionError(hostname, str(e)) from e

    if not infos:
        raise ResolutionError(hostname)

    # (family, type, proto, canonname, sockaddr)
    address = infos[0][4][0]
    logger.trace(f"Resolved {hostname} -> {address}")
    return address
