"""
Unit tests for WrappedServer

Spawns the fake relay directly, without a NostrD handle.
"""

import logging
import socket
import subprocess
import time

import psutil
import pytest

from nostrd import (
    ProcessExited,
    ServerConfig,
    ServerState,
    SpawnError,
    StartupTimeout,
    WrappedServer,
    Workspace,
    get_available_port,
    probe_port,
    render_config,
    write_config,
)


@pytest.fixture
def workspace(tmp_path):
    ws = Workspace.create(root=str(tmp_path))
    yield ws
    ws.cleanup()


@pytest.fixture
def server_config(fake_relay_binary, workspace):
    """Factory for ServerConfig running the fake relay"""
    def _make(mode="serve", **overrides):
        port = get_available_port()
        write_config(workspace.config_path, render_config("127.0.0.1", port, workspace.data_dir))
        options = dict(
            executable=fake_relay_binary,
            args=["--config", str(workspace.config_path), "--db", str(workspace.data_dir)],
            host="127.0.0.1",
            port=port,
            cwd=workspace.path,
            log_path=workspace.log_path,
            env={"FAKE_RELAY_MODE": mode},
            startup_timeout=10.0,
            health_check_interval=0.05,
            graceful_shutdown_timeout=2.0,
        )
        options.update(overrides)
        return ServerConfig(**options)

    return _make


class TestStart:
    """Tests for WrappedServer.start"""

    def test_start_and_stop(self, server_config):
        """Test the full lifecycle"""
        # Arrange
        server = WrappedServer(server_config())

        # Act
        server.start()
        pid = server.get_pid()

        # Assert
        assert server.get_state() == ServerState.RUNNING
        assert server.is_running()
        assert probe_port("127.0.0.1", server.config.port)

        assert server.stop() is True
        assert server.get_state() == ServerState.STOPPED
        assert server.get_pid() is None
        assert not psutil.pid_exists(pid)

    def test_cannot_start_twice(self, server_config):
        with WrappedServer(server_config()) as server:
            with pytest.raises(RuntimeError):
                server.start()

    def test_output_goes_to_log_file(self, server_config, workspace):
        """Test stdout and stderr are captured"""
        with WrappedServer(server_config()):
            pass

        log = workspace.log_path.read_text(encoding="utf-8")
        assert "control message listener started" in log
        assert "fake relay mode=serve" in log

    def test_spawn_error(self, tmp_path, server_config):
        """Test a file the OS cannot execute"""
        # Arrange
        bogus = tmp_path / "bogus"
        bogus.write_bytes(b"\x00\x01\x02garbage")
        bogus.chmod(0o755)
        server = WrappedServer(server_config(executable=str(bogus)))

        # Act & Assert
        with pytest.raises(SpawnError):
            server.start()
        assert server.get_state() == ServerState.ERROR

    def test_process_exits_early(self, server_config):
        """Test exit before readiness surfaces the exit code"""
        # Arrange
        config = server_config(mode="exit")
        config.env["FAKE_RELAY_EXIT_CODE"] = "4"
        server = WrappedServer(config)

        # Act
        with pytest.raises(ProcessExited) as exc_info:
            server.start()

        # Assert
        assert exc_info.value.returncode == 4
        assert server.get_state() == ServerState.ERROR
        assert server.get_pid() is None

    def test_startup_timeout_kills_process(self, server_config):
        """Test a relay that never listens is killed after the timeout"""
        # Arrange
        server = WrappedServer(server_config(mode="hang", startup_timeout=1.0))
        start = time.monotonic()

        # Act
        with pytest.raises(StartupTimeout):
            server.start()

        # Assert
        assert time.monotonic() - start < 1.0 + 2.0 + 3.0
        assert server.get_pid() is None
        assert not server.is_running()


class TestStop:
    """Tests for WrappedServer.stop"""

    def test_stop_never_started(self, server_config):
        """Test stop is a no-op before start"""
        server = WrappedServer(server_config())

        assert server.stop() is True
        assert server.get_state() == ServerState.STOPPED

    def test_stop_idempotent(self, server_config):
        server = WrappedServer(server_config())
        server.start()

        assert server.stop() is True
        assert server.stop() is True

    def test_force_kill_after_grace_period(self, server_config):
        """Test a relay ignoring SIGINT is SIGKILLed"""
        # Arrange
        server = WrappedServer(server_config(mode="ignore_term", graceful_shutdown_timeout=0.5))
        server.start()

        # Act
        assert server.stop() is True

        # Assert
        assert server.returncode == -9

    def test_force_kill_failure_is_reported(self, server_config, monkeypatch, caplog):
        """Test stop() returns False without raising when the process cannot be reaped"""
        # Arrange
        server = WrappedServer(server_config(mode="ignore_term", graceful_shutdown_timeout=0.2))
        server.start()
        process = server.process
        real_wait = process.wait

        def never_exits(timeout=None):
            raise subprocess.TimeoutExpired(process.args, timeout)

        monkeypatch.setattr(process, "wait", never_exits)

        # Act
        with caplog.at_level(logging.ERROR, logger="nostrd.server_wrapper"):
            result = server.stop()

        # Assert
        assert result is False
        assert server.get_state() == ServerState.ERROR
        assert "Failed to kill relay process" in caplog.text

        monkeypatch.undo()
        real_wait(timeout=5)


class TestOwnsListener:
    """Tests for WrappedServer.owns_listener"""

    def test_not_started(self, server_config):
        assert WrappedServer(server_config()).owns_listener() is False

    def test_running_relay_owns_its_port(self, server_config):
        with WrappedServer(server_config()) as server:
            assert server.owns_listener() is True

    def test_foreign_listener_not_owned(self, server_config):
        """Test a relay that never listens does not own a port someone else holds"""
        # Arrange
        holder = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        holder.bind(("127.0.0.1", 0))
        holder.listen(8)
        server = WrappedServer(server_config(mode="hang", port=holder.getsockname()[1]))

        try:
            # Act
            server.spawn()

            # Assert
            assert server.owns_listener() is False
        finally:
            server.stop()
            holder.close()
