"""
Relay process lifecycle management.

Provides a wrapper owning one relay subprocess with:
- Spawning with output redirected to a log file
- Readiness waiting
- Graceful shutdown with fallback to force kill
- Context manager support
"""

import os
import signal
import subprocess
import logging
from typing import Dict, List, Optional
from enum import Enum
from dataclasses import dataclass, field
from pathlib import Path

import psutil

from .errors import CleanupError, ProcessExited, SpawnError, StartupTimeout
from .readiness import wait_for_port


logger = logging.getLogger(__name__)


class ServerState(str, Enum):
    """Server process states"""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


class ShutdownMethod(str, Enum):
    """Graceful shutdown signals"""
    SIGTERM = "sigterm"
    SIGINT = "sigint"

    @property
    def signum(self) -> int:
        return signal.SIGTERM if self is ShutdownMethod.SIGTERM else signal.SIGINT


class TimeoutValue(int, Enum):
    """Timeout values in seconds"""
    STARTUP = 10
    GRACEFUL_SHUTDOWN = 5
    FORCED_SHUTDOWN = 2


@dataclass
class ServerConfig:
    """
    Configuration for a wrapped relay process.

    Attributes:
        executable: Path to relay executable
        args: Command line arguments
        host: Host the relay listens on
        port: Port the relay listens on
        cwd: Working directory for the process
        log_path: File receiving stdout and stderr (None discards output)
        env: Extra environment variables for the child only
        startup_timeout: Seconds to wait for the port to accept connections
        health_check_interval: Seconds between readiness probes
        graceful_shutdown_timeout: Seconds to wait after the graceful signal
        shutdown_method: Signal used for graceful shutdown
    """
    executable: str
    args: List[str]
    host: str
    port: int
    cwd: Optional[Path] = None
    log_path: Optional[Path] = None
    env: Dict[str, str] = field(default_factory=dict)
    startup_timeout: float = TimeoutValue.STARTUP.value
    health_check_interval: float = 0.1
    graceful_shutdown_timeout: float = TimeoutValue.GRACEFUL_SHUTDOWN.value
    shutdown_method: ShutdownMethod = ShutdownMethod.SIGINT


class WrappedServer:
    """
    Owner of a single relay subprocess.

    Nothing else signals or reaps the process; the PID is never
    reassigned once spawned.

    Example:
        config = ServerConfig(
            executable="/usr/local/bin/nostr-rs-relay",
            args=["--config", "/tmp/nostrd_x/config.toml"],
            host="127.0.0.1",
            port=40123,
        )

        with WrappedServer(config) as server:
            # Relay is accepting connections
            ...
        # Relay stopped
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self.process: Optional[subprocess.Popen] = None
        self.state: ServerState = ServerState.STOPPED
        self.returncode: Optional[int] = None

    def start(self) -> None:
        """
        Spawn the relay and block until its port accepts connections.

        On any failure the process is stopped before the error propagates.

        Raises:
            RuntimeError: If the server was already started
            SpawnError: If the OS refused to start the process
            ProcessExited: If the process died before becoming ready
            StartupTimeout: If the port never accepted a connection
        """
        if self.state != ServerState.STOPPED or self.process is not None:
            raise RuntimeError(
                f"Cannot start server in state {self.state.value}"
            )

        self.state = ServerState.STARTING
        self.spawn()

        try:
            elapsed = wait_for_port(
                self.config.host,
                self.config.port,
                timeout=self.config.startup_timeout,
                interval=self.config.health_check_interval,
                exit_status=self.poll,
                owns_listener=self.owns_listener,
            )
        except (ProcessExited, StartupTimeout) as e:
            logger.error(f"Relay failed to start: {e}")
            self.stop()
            self.state = ServerState.ERROR
            raise

        self.state = ServerState.RUNNING
        logger.info(
            f"Relay ready on {self.config.host}:{self.config.port} "
            f"after {elapsed:.2f}s (PID: {self.process.pid})"
        )

    def spawn(self) -> None:
        """
        Start the relay process without waiting for readiness.

        Raises:
            SpawnError: If the OS refused to start the process
        """
        command = [self.config.executable] + list(self.config.args)
        env = dict(os.environ)
        env.update(self.config.env)

        logger.info(f"Starting relay: {' '.join(command)}")

        log_file = None
        try:
            if self.config.log_path is not None:
                log_file = open(self.config.log_path, "ab")
                output = log_file
            else:
                output = subprocess.DEVNULL

            self.process = subprocess.Popen(
                command,
                cwd=str(self.config.cwd) if self.config.cwd else None,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=output,
                stderr=subprocess.STDOUT,
            )
        except OSError as e:
            self.state = ServerState.ERROR
            raise SpawnError(
                f"Failed to start {self.config.executable}: {e}"
            ) from e
        finally:
            # The child holds its own descriptor
            if log_file is not None:
                log_file.close()

        logger.info(f"Relay process started (PID: {self.process.pid})")

    def poll(self) -> Optional[int]:
        """
        Exit status of the process, or None while it is alive.
        """
        if self.process is None:
            return self.returncode
        return self.process.poll()

    def owns_listener(self) -> bool:
        """
        Check the relay itself (or one of its children) listens on its port.

        Returns:
            True if a LISTEN socket on the configured port belongs to the
            relay's process tree. Also True when the OS denies inspecting
            the sockets, leaving the liveness check as the only guard.
        """
        if self.process is None:
            return False

        try:
            root = psutil.Process(self.process.pid)
            processes = [root] + root.children(recursive=True)
        except psutil.NoSuchProcess:
            return False

        for proc in processes:
            try:
                connections = proc.net_connections(kind="inet")
            except psutil.NoSuchProcess:
                continue
            except psutil.AccessDenied:
                logger.debug(f"Cannot inspect sockets of process {proc.pid}")
                return True

            for conn in connections:
                if conn.status == psutil.CONN_LISTEN and conn.laddr and conn.laddr.port == self.config.port:
                    return True

        return False

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Stop the relay process.

        Sends the graceful signal first, then force kills if the process
        outlives the grace period. Calling it on a stopped or never
        started server is a no-op. Never raises.

        Args:
            timeout: Seconds to wait for graceful shutdown

        Returns:
            True if no process is left running
        """
        if self.process is None:
            if self.state != ServerState.ERROR:
                self.state = ServerState.STOPPED
            return True

        if timeout is None:
            timeout = self.config.graceful_shutdown_timeout

        process = self.process
        self.state = ServerState.STOPPING

        if process.poll() is None:
            logger.info(f"Stopping relay (PID: {process.pid})")
            if self._stop_gracefully(process, timeout) or self._force_kill(process):
                logger.info("Relay stopped")
            else:
                self.state = ServerState.ERROR
                return False
        else:
            logger.info(
                f"Relay already exited (PID: {process.pid}, "
                f"exit code: {process.returncode})"
            )

        self.returncode = process.returncode
        self.process = None
        self.state = ServerState.STOPPED
        return True

    def _stop_gracefully(self, process: subprocess.Popen, timeout: float) -> bool:
        method = self.config.shutdown_method
        try:
            process.send_signal(method.signum)
            logger.debug(f"Sent {method.name} to process {process.pid}")
            process.wait(timeout=timeout)
            return True
        except subprocess.TimeoutExpired:
            logger.warning(
                f"Relay did not stop gracefully within {timeout}s, "
                f"force killing"
            )
        except OSError as e:
            logger.warning(f"Error during graceful shutdown: {e}")
        return False

    def _force_kill(self, process: subprocess.Popen) -> bool:
        # Children first, so nothing is reparented to init
        try:
            children = psutil.Process(process.pid).children(recursive=True)
        except psutil.Error:
            children = []

        for child in children:
            try:
                child.kill()
            except psutil.Error as e:
                logger.debug(f"Could not kill child {child.pid}: {e}")

        try:
            process.kill()
            logger.debug(f"Sent SIGKILL to process {process.pid}")
            process.wait(timeout=TimeoutValue.FORCED_SHUTDOWN.value)
        except (OSError, subprocess.TimeoutExpired) as e:
            error = CleanupError(f"Failed to kill relay process {process.pid}: {e}")
            logger.error(str(error))
            return False

        psutil.wait_procs(children, timeout=TimeoutValue.FORCED_SHUTDOWN.value)
        return True

    def is_running(self) -> bool:
        """
        Check if the relay process is alive.
        """
        if self.process is None:
            return False

        poll_result = self.process.poll()
        is_alive = poll_result is None

        if not is_alive and self.state == ServerState.RUNNING:
            logger.warning(
                f"Relay process died unexpectedly (exit code: {poll_result})"
            )
            self.state = ServerState.ERROR

        return is_alive

    def get_pid(self) -> Optional[int]:
        """
        Get relay process ID.

        Returns:
            Process ID if spawned and not yet reaped, None otherwise
        """
        return self.process.pid if self.process else None

    def get_state(self) -> ServerState:
        """
        Get current server state.

        Returns:
            Current ServerState
        """
        return self.state

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
