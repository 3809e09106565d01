"""
Test-facing handle on a running relay.

Example:
    with NostrD.new() as relay:
        client.connect(relay.url())
    # Relay killed, workspace removed
"""

import os
import socket
import logging
from pathlib import Path
from typing import List, Optional

from .binary_resolver import resolve_binary
from .config import BINARY_ENV_VAR, BUNDLED_BINARY, Conf
from .config_writer import render_config, write_config
from .errors import ConfigWriteError
from .port_manager import address_family, get_available_port
from .server_wrapper import ServerConfig, WrappedServer
from .workspace import Workspace


logger = logging.getLogger(__name__)


class NostrD:
    """
    One relay process plus its port and workspace.

    Build it with new() or with_conf(). The process and directory are
    released by stop(), by leaving a with block, or when the handle is
    garbage collected, whichever comes first.

    Attributes:
        binary: Resolved executable path
        addr: Listen host
        port: Listen port
        pid: Relay process ID (kept after stop for diagnostics)
    """

    def __init__(
        self,
        server: WrappedServer,
        workspace: Workspace,
        binary: Path,
        addr: str,
        port: int,
    ):
        self.server = server
        self.workspace = workspace
        self.binary = binary
        self.addr = addr
        self.port = port
        self.pid = server.get_pid()
        self._log_offset = 0
        self._stopped = False

    @classmethod
    def new(cls) -> "NostrD":
        """Launch a relay with the default configuration"""
        return cls.with_conf(Conf())

    @classmethod
    def with_conf(cls, conf: Conf) -> "NostrD":
        """
        Launch a relay and wait until it accepts connections.

        Whatever was created before a failure (workspace, process) is
        torn down before the error propagates.

        Args:
            conf: Launch options

        Returns:
            A ready NostrD

        Raises:
            BinaryNotFound: No usable executable
            NoAvailablePort: Port allocation failed
            ConfigWriteError: Workspace or config file could not be written
            SpawnError: The process could not be started
            ProcessExited: The process died before becoming ready
            StartupTimeout: The port never accepted a connection
        """
        environ = conf.environ if conf.environ is not None else os.environ
        binary = resolve_binary(conf.binary, environ, BINARY_ENV_VAR, BUNDLED_BINARY)

        try:
            workspace = Workspace.create()
        except OSError as e:
            raise ConfigWriteError(f"Failed to create workspace: {e}") from e

        server: Optional[WrappedServer] = None
        try:
            host = conf.host
            port = conf.port if conf.port is not None else get_available_port(host)

            content = render_config(host, port, workspace.data_dir, conf.config_options)
            write_config(workspace.config_path, content)

            args = list(conf.args) + [
                "--config", str(workspace.config_path),
                "--db", str(workspace.data_dir),
            ]
            server = WrappedServer(ServerConfig(
                executable=str(binary.path),
                args=args,
                host=host,
                port=port,
                cwd=workspace.path,
                log_path=workspace.log_path if conf.log_output else None,
                env=dict(conf.env),
                startup_timeout=conf.timeout,
                health_check_interval=conf.health_check_interval,
                graceful_shutdown_timeout=conf.graceful_shutdown_timeout,
                shutdown_method=conf.shutdown_signal,
            ))
            server.start()
        except BaseException:
            if server is not None:
                server.stop()
            workspace.cleanup()
            raise

        relay = cls(server, workspace, binary.path, host, port)
        logger.info(f"NostrD running at {relay.url()} (PID: {relay.pid})")
        return relay

    def url(self) -> str:
        """
        Connection address of the relay.

        Returns:
            ws://<host>:<port>, with IPv6 hosts in brackets
        """
        host = f"[{self.addr}]" if address_family(self.addr) == socket.AF_INET6 else self.addr
        return f"ws://{host}:{self.port}"

    def workdir(self) -> Path:
        """Workspace directory of the running relay"""
        return self.workspace.path

    def is_running(self) -> bool:
        """
        Check if the relay process is alive.

        Returns:
            True until the process exits or is stopped
        """
        return self.server.is_running()

    def logs(self) -> List[str]:
        """
        Lines the relay wrote to stdout/stderr since the last clear_logs().

        Empty when output is discarded or the workspace is gone.
        """
        try:
            with open(self.workspace.log_path, "rb") as file:
                file.seek(self._log_offset)
                data = file.read()
        except FileNotFoundError:
            return []
        return data.decode("utf-8", errors="replace").splitlines()

    def clear_logs(self) -> None:
        """
        Hide everything logged so far from later logs() calls.
        """
        try:
            self._log_offset = self.workspace.log_path.stat().st_size
        except FileNotFoundError:
            self._log_offset = 0

    def stop(self) -> None:
        """
        Terminate the relay and delete its workspace.

        Idempotent and never raises; teardown failures are logged.
        """
        if self._stopped:
            return
        self._stopped = True

        try:
            self.server.stop()
        except Exception as e:
            logger.warning(f"Error stopping relay (PID: {self.pid}): {e}")
        self.workspace.cleanup()

    kill = stop

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False

    def __del__(self):
        # Partially built instances have nothing to release
        if getattr(self, "_stopped", True):
            return
        logger.warning(f"NostrD at port {self.port} dropped while running, cleaning up")
        self.stop()

    def __repr__(self) -> str:
        return f"NostrD(url={self.url()!r}, pid={self.pid}, workdir={str(self.workdir())!r})"
