"""
Readiness probing for a freshly spawned relay.

The relay offers no readiness signal of its own, so the only check is a
plain TCP connect to its listening port.
"""

import socket
import time
import logging
from typing import Callable, Optional

from .errors import ProcessExited, StartupTimeout


logger = logging.getLogger(__name__)

PROBE_CONNECT_TIMEOUT = 0.5


def probe_port(host: str, port: int, timeout: float = PROBE_CONNECT_TIMEOUT) -> bool:
    """
    Attempt one connect/disconnect against host:port.

    Args:
        host: Host to connect to
        port: Port to connect to
        timeout: Connect timeout in seconds

    Returns:
        True if the connection was accepted
    """
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError as e:
        logger.debug(f"Probe of {host}:{port} failed: {e}")
        return False


def wait_for_port(
    host: str,
    port: int,
    timeout: float,
    interval: float = 0.1,
    exit_status: Optional[Callable[[], Optional[int]]] = None,
    owns_listener: Optional[Callable[[], bool]] = None,
) -> float:
    """
    Block until host:port accepts a connection from the server.

    A successful connect only counts once owns_listener confirms the
    listening socket belongs to the server and not to some other process
    that already held the port.

    Args:
        host: Host the server listens on
        port: Port the server listens on
        timeout: Total budget in seconds
        interval: Sleep between attempts
        exit_status: Returns the server's exit code once it has died,
            None while it is alive
        owns_listener: Returns True if the server itself listens on port

    Returns:
        Seconds elapsed until the first successful connect

    Raises:
        ProcessExited: If exit_status reports the server died
        StartupTimeout: If the budget ran out first
    """
    logger.info(f"Waiting for {host}:{port} to accept connections (timeout: {timeout}s)")

    start_time = time.monotonic()
    deadline = start_time + timeout

    while True:
        _check_alive(exit_status)

        remaining = deadline - time.monotonic()
        if probe_port(host, port, timeout=max(0.01, min(PROBE_CONNECT_TIMEOUT, remaining))):
            if owns_listener is None or owns_listener():
                # Server may have died between the connect and the ownership check
                _check_alive(exit_status)
                return time.monotonic() - start_time
            logger.debug(f"{host}:{port} answered, but not from the server process")

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        time.sleep(min(interval, remaining))

    # One last look, a dead process explains the timeout better
    _check_alive(exit_status)

    raise StartupTimeout(timeout, host, port)


def _check_alive(exit_status: Optional[Callable[[], Optional[int]]]) -> None:
    if exit_status is None:
        return
    returncode = exit_status()
    if returncode is not None:
        raise ProcessExited(returncode)
