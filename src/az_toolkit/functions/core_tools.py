"""Azure Functions Core Tools (``func``) integration."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from az_toolkit.commands import exec_command
from az_toolkit.exceptions import AzureExecutionError, CommandError

logger = logging.getLogger(__name__)

FUNC_CMD = "func"
GET_LOCAL_VERSION_CMD = f"{FUNC_CMD} --version"
INSTALL_FUNCTION_EXTENSIONS_CMD = FUNC_CMD + ' extensions install -c "{}" --java'
LEAST_SUPPORTED_VERSION = (2, 0, 1)
CORE_TOOLS_NOT_SUPPORTED = (
    "Local Azure Functions Core Tools does not exist or is too old to support function extension "
    "installation, skip package phase. To install or update it, see: https://aka.ms/azfunc-install"
)
INSTALL_FAILED = "Failed to install the Function extensions"


def parse_version(text: str | None) -> tuple[int, ...] | None:
    """``"4.0.5455 (preview)"`` -> ``(4, 0, 5455)``."""
    if not text:
        return None
    match = re.search(r"\d+(?:\.\d+)*", text)
    if not match:
        return None
    return tuple(int(part) for part in match.group().split("."))


def local_version() -> tuple[int, ...] | None:
    try:
        return parse_version(exec_command(GET_LOCAL_VERSION_CMD))
    except CommandError as exc:
        logger.debug("Failed to get the local Core Tools version: %s", exc)
        return None


def check_version() -> None:
    version = local_version()
    if version is None or version < LEAST_SUPPORTED_VERSION:
        raise AzureExecutionError(CORE_TOOLS_NOT_SUPPORTED)


def install_extension(staging_directory: Path, basedir: Path) -> None:
    """Install binding extensions into *staging_directory* with ``func``."""
    check_version()
    command = INSTALL_FUNCTION_EXTENSIONS_CMD.format(staging_directory)
    try:
        output = exec_command(command, cwd=basedir, merge_error_stream=True)
    except CommandError as exc:
        raise AzureExecutionError(INSTALL_FAILED) from exc
    logger.debug(output)
