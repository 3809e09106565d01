"""
Local port allocation for relay processes.

Ports come from the OS ephemeral range, so concurrent relays never
collide on a hardcoded default.
"""

import ipaddress
import socket
import logging

from .errors import NoAvailablePort


logger = logging.getLogger(__name__)

LOOPBACK = "127.0.0.1"


def address_family(host: str) -> int:
    """
    Socket family for an IP literal.

    Returns:
        AF_INET6 for IPv6 addresses, AF_INET otherwise
    """
    try:
        version = ipaddress.ip_address(host).version
    except ValueError:
        # Host names resolve to IPv4
        return socket.AF_INET
    return socket.AF_INET6 if version == 6 else socket.AF_INET


def get_available_port(host: str = LOOPBACK) -> int:
    """
    Return a port on host that is free right now.

    Binding to port 0 lets the OS pick; the socket is closed again before
    returning. Nothing books the port in between, so another process may
    still grab it before the relay binds. A relay losing that race fails
    its startup instead of hanging.

    Args:
        host: Interface to allocate on

    Returns:
        Port number

    Raises:
        NoAvailablePort: If the bind itself failed
    """
    try:
        with socket.socket(address_family(host), socket.SOCK_STREAM) as sock:
            sock.bind((host, 0))
            port = sock.getsockname()[1]
    except OSError as e:
        raise NoAvailablePort(f"Could not allocate a port on {host}: {e}") from e

    logger.debug(f"Allocated port {port} on {host}")
    return port
