"""
Strongly typed configuration for launching a relay.
"""

import ipaddress
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .server_wrapper import ShutdownMethod, TimeoutValue


# Environment variable naming an alternate relay executable
BINARY_ENV_VAR: str = "NOSTRD_EXE"

# Executable shipped alongside the package
BUNDLED_BINARY: Path = Path(__file__).parent / "bin" / "nostr-rs-relay_0_9_0_linux"

DEFAULT_HOST: str = "127.0.0.1"

# Config keys always generated per instance, never taken from config_options
RESERVED_CONFIG_KEYS: Dict[str, tuple] = {
    "network": ("address", "port"),
    "database": ("data_directory",),
}

ConfigScalar = Union[bool, int, float, str]


class Conf(BaseModel):
    """
    Options for NostrD.with_conf().

    Immutable once built; NostrD.new() uses Conf().
    """
    binary: Optional[str] = Field(None, description="Explicit relay executable, overrides NOSTRD_EXE and the bundled binary")
    args: List[str] = Field(default_factory=list, description="Extra relay arguments, placed before --config/--db")
    ip: Optional[str] = Field(None, description="Listen host as an IPv4 or IPv6 literal (default loopback)")
    port: Optional[int] = Field(None, ge=1, le=65535, description="Listen port (default OS-assigned)")
    timeout: float = Field(TimeoutValue.STARTUP.value, gt=0, description="Seconds to wait for the relay to accept connections")
    health_check_interval: float = Field(0.1, gt=0, description="Seconds between readiness probes")
    graceful_shutdown_timeout: float = Field(TimeoutValue.GRACEFUL_SHUTDOWN.value, gt=0, description="Seconds between the graceful signal and SIGKILL")
    shutdown_signal: ShutdownMethod = Field(ShutdownMethod.SIGINT, description="Graceful shutdown signal")
    log_output: bool = Field(True, description="Capture stdout/stderr in the workspace log file instead of discarding it")
    env: Dict[str, str] = Field(default_factory=lambda: {"RUST_LOG": "debug"}, description="Extra environment for the relay process only")
    config_options: Dict[str, Dict[str, ConfigScalar]] = Field(default_factory=dict, description="Extra config file sections, keyed by section name")
    environ: Optional[Dict[str, str]] = Field(None, description="Environment consulted for overrides (default os.environ)")

    model_config = {
        "frozen": True,
        "extra": "forbid",
    }

    @field_validator("ip")
    @classmethod
    def check_ip(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            return str(ipaddress.ip_address(value))
        except ValueError:
            raise ValueError(f"ip must be an IPv4 or IPv6 address, got {value!r}")

    @field_validator("config_options")
    @classmethod
    def check_config_options(cls, value: Dict[str, Dict[str, ConfigScalar]]) -> Dict[str, Dict[str, ConfigScalar]]:
        for section, keys in RESERVED_CONFIG_KEYS.items():
            clashes = sorted(set(value.get(section, {})) & set(keys))
            if clashes:
                raise ValueError(
                    f"config_options cannot set [{section}] {', '.join(clashes)}; "
                    f"use Conf.ip/Conf.port, the data directory is per instance"
                )
        return value

    @property
    def host(self) -> str:
        """
        Listen host.

        Returns:
            Conf.ip, or loopback when unset
        """
        return self.ip or DEFAULT_HOST
