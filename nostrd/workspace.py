"""
Per-relay temporary working directory.
"""

import shutil
import sys
import tempfile
import logging
from enum import Enum
from pathlib import Path
from typing import Optional

from .errors import CleanupError


logger = logging.getLogger(__name__)


class WorkspaceName(str, Enum):
    """File and directory names inside a workspace"""
    PREFIX = "nostrd_"
    CONFIG = "config.toml"
    DATA = "db"
    LOG = "nostrd.log"


class Workspace:
    """
    Isolated directory holding one relay's config, data and log.

    The config and log files are not created here; the data directory is,
    since the relay expects it to exist.

    Attributes:
        path: Root of the workspace
        config_path: Generated config file
        data_dir: Relay database directory
        log_path: Captured stdout/stderr
    """

    def __init__(self, path: Path):
        self.path = path
        self.config_path = path / WorkspaceName.CONFIG.value
        self.data_dir = path / WorkspaceName.DATA.value
        self.log_path = path / WorkspaceName.LOG.value
        self._removed = False

    @classmethod
    def create(
        cls,
        prefix: str = WorkspaceName.PREFIX.value,
        root: Optional[str] = None,
    ) -> "Workspace":
        """
        Create a uniquely named workspace under root (system temp by default).

        Raises:
            OSError: If the directory could not be created
        """
        path = Path(tempfile.mkdtemp(prefix=prefix, dir=root))
        workspace = cls(path)
        try:
            workspace.data_dir.mkdir()
        except OSError:
            workspace.cleanup()
            raise

        logger.debug(f"Created workspace {path}")
        return workspace

    @property
    def removed(self) -> bool:
        return self._removed

    def cleanup(self) -> bool:
        """
        Recursively delete the workspace. Safe to call repeatedly.

        Returns:
            True if the directory is gone
        """
        if self._removed:
            return True

        errors = []

        def _on_error(func, failed_path, exc):
            if isinstance(exc, tuple):
                exc = exc[1]
            errors.append(f"{failed_path}: {exc}")

        if sys.version_info >= (3, 12):
            shutil.rmtree(self.path, onexc=_on_error)
        else:
            shutil.rmtree(self.path, onerror=_on_error)

        if self.path.exists():
            error = CleanupError(
                f"Failed to remove workspace {self.path}: {'; '.join(errors)}"
            )
            logger.warning(str(error))
            return False

        self._removed = True
        logger.debug(f"Removed workspace {self.path}")
        return True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup()
        return False

    def __repr__(self) -> str:
        return f"Workspace({str(self.path)!r})"
