"""
Exceptions raised while launching and tearing down a relay process.

Every startup failure surfaces from NostrD.with_conf() as one of these.
CleanupError is only ever logged.
"""

from typing import Optional


class NostrDError(Exception):
    """Base class for all nostrd errors"""


class BinaryNotFound(NostrDError, FileNotFoundError):
    """No usable relay executable could be resolved"""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class NoAvailablePort(NostrDError):
    """The OS refused to hand out a local TCP port"""


class ConfigWriteError(NostrDError):
    """The generated config file could not be written"""


class SpawnError(NostrDError):
    """The OS refused to start the relay process"""


class ProcessExited(NostrDError):
    """
    The relay process died before it started accepting connections.

    Attributes:
        returncode: Exit status reported by the OS (negative for signals)
    """

    def __init__(self, returncode: Optional[int], message: Optional[str] = None):
        self.returncode = returncode
        super().__init__(
            message or f"Relay process exited before becoming ready (exit code: {returncode})"
        )


class StartupTimeout(NostrDError, TimeoutError):
    """
    The relay port never accepted a connection within the startup budget.

    Attributes:
        timeout: Budget in seconds that was exhausted
    """

    def __init__(self, timeout: float, host: str, port: int):
        self.timeout = timeout
        self.host = host
        self.port = port
        super().__init__(
            f"Relay not accepting connections on {host}:{port} after {timeout}s"
        )


class CleanupError(NostrDError):
    """Teardown could not kill the process or remove the workspace"""
