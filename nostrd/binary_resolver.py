"""
Chooses which relay executable to run.

Resolution order: explicit path, then the NOSTRD_EXE environment
variable, then the bundled binary.
"""

import os
import logging
from enum import Enum
from pathlib import Path
from typing import Mapping, NamedTuple, Optional, Union

from .errors import BinaryNotFound


logger = logging.getLogger(__name__)


class BinarySource(str, Enum):
    """Where a resolved binary came from"""
    EXPLICIT = "explicit"
    ENVIRONMENT = "environment"
    BUNDLED = "bundled"


class ResolvedBinary(NamedTuple):
    path: Path
    source: BinarySource


def resolve_binary(
    explicit: Optional[str],
    environ: Mapping[str, str],
    env_var: str,
    bundled: Union[str, Path],
) -> ResolvedBinary:
    """
    Pick the relay executable and check it can be run.

    Empty strings count as unset. Only the winning candidate is
    validated; an invalid explicit path does not fall through.

    Args:
        explicit: Path from the caller's configuration
        environ: Environment to read env_var from
        env_var: Name of the override variable
        bundled: Fallback path

    Returns:
        ResolvedBinary with an absolute path

    Raises:
        BinaryNotFound: If the chosen path is missing, not a file, or
            not executable
    """
    env_value = environ.get(env_var)

    if explicit:
        candidate, source = explicit, BinarySource.EXPLICIT
    elif env_value:
        candidate, source = env_value, BinarySource.ENVIRONMENT
    else:
        candidate, source = str(bundled), BinarySource.BUNDLED

    path = Path(candidate).expanduser()
    if not path.exists():
        raise BinaryNotFound(
            f"Relay binary not found ({source.value}): {path}\n"
            f"Pass Conf(binary=...) or set {env_var}",
            path=str(path),
        )
    if not path.is_file():
        raise BinaryNotFound(f"Relay binary is not a file ({source.value}): {path}", path=str(path))
    if not os.access(path, os.X_OK):
        raise BinaryNotFound(f"Relay binary is not executable ({source.value}): {path}", path=str(path))

    logger.info(f"Using relay binary {path} ({source.value})")
    return ResolvedBinary(path.resolve(), source)
