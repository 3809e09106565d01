"""
Renders and writes the relay's TOML config file.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Mapping, Optional

from .config import ConfigScalar
from .errors import ConfigWriteError


logger = logging.getLogger(__name__)


def _format_value(value: ConfigScalar) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    # JSON string escaping is valid for TOML basic strings
    return json.dumps(str(value))


def render_config(
    host: str,
    port: int,
    data_dir: Path,
    options: Optional[Mapping[str, Mapping[str, ConfigScalar]]] = None,
) -> str:
    """
    Build the config file text.

    Args:
        host: Listen address
        port: Listen port
        data_dir: Relay database directory
        options: Extra sections; the reserved address, port and data
            directory keys are always the generated values

    Returns:
        TOML document
    """
    generated: Dict[str, Dict[str, ConfigScalar]] = {
        "network": {"address": host, "port": port},
        "database": {"data_directory": str(data_dir)},
    }
    sections: Dict[str, Dict[str, ConfigScalar]] = {name: {} for name in generated}
    for name, values in (options or {}).items():
        sections.setdefault(name, {}).update(values)
    for name, values in generated.items():
        sections[name].update(values)

    lines = []
    for name, values in sections.items():
        if lines:
            lines.append("")
        lines.append(f"[{name}]")
        for key, value in values.items():
            lines.append(f"{key} = {_format_value(value)}")

    return "\n".join(lines) + "\n"


def write_config(path: Path, content: str) -> Path:
    """
    Write the config file synchronously.

    Raises:
        ConfigWriteError: On any I/O failure
    """
    try:
        with open(path, "w", encoding="utf-8") as file:
            file.write(content)
    except OSError as e:
        raise ConfigWriteError(f"Failed to write config {path}: {e}") from e

    logger.debug(f"Wrote relay config {path}")
    return path
