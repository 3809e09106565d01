"""
Launch a local nostr relay process for integration tests.

Provides port allocation, workspace management and process lifecycle
management for relays spawned by test code.
"""

from .errors import (
    NostrDError,
    BinaryNotFound,
    NoAvailablePort,
    ConfigWriteError,
    SpawnError,
    ProcessExited,
    StartupTimeout,
    CleanupError,
)

from .config import (
    Conf,
    BINARY_ENV_VAR,
    BUNDLED_BINARY,
)

from .binary_resolver import (
    resolve_binary,
    BinarySource,
    ResolvedBinary,
)

from .port_manager import address_family, get_available_port
from .workspace import Workspace
from .config_writer import render_config, write_config
from .readiness import probe_port, wait_for_port

from .server_wrapper import (
    WrappedServer,
    ServerConfig,
    ServerState,
    ShutdownMethod,
)

from .relay import NostrD

__all__ = [
    # Handle
    'NostrD',
    'Conf',
    'BINARY_ENV_VAR',
    'BUNDLED_BINARY',

    # Errors
    'NostrDError',
    'BinaryNotFound',
    'NoAvailablePort',
    'ConfigWriteError',
    'SpawnError',
    'ProcessExited',
    'StartupTimeout',
    'CleanupError',

    # Components
    'resolve_binary',
    'BinarySource',
    'ResolvedBinary',
    'get_available_port',
    'address_family',
    'Workspace',
    'render_config',
    'write_config',
    'probe_port',
    'wait_for_port',
    'WrappedServer',
    'ServerConfig',
    'ServerState',
    'ShutdownMethod',
]
