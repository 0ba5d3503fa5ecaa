"""Run external commands through the platform shell."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys

from az_toolkit.exceptions import CommandError

logger = logging.getLogger(__name__)

_WINDOWS_STARTER = ("cmd.exe", "/c")
_POSIX_STARTER = ("/bin/sh", "-c")
_DEFAULT_POSIX_CWD = "/bin/"


def is_windows() -> bool:
    return sys.platform.startswith("win")


def is_wsl() -> bool:
    return sys.platform.startswith("linux") and os.environ.get("WSL_DISTRO_NAME") is not None


def _safe_working_directory() -> str | None:
    if is_windows():
        root = os.environ.get("SystemRoot")
        return os.path.join(root, "system32") if root else None
    return _DEFAULT_POSIX_CWD


def exec_command(
    command: str,
    env: dict[str, str] | None = None,
    cwd: str | os.PathLike[str] | None = None,
    merge_error_stream: bool = False,
) -> str:
    """Run *command* in a shell and return its trimmed standard output.

    Raises :class:`CommandError` when the command exits non-zero, or when it
    writes only to stderr (unless *merge_error_stream* is set).
    """
    starter, switch = _WINDOWS_STARTER if is_windows() else _POSIX_STARTER
    working_directory = str(cwd) if cwd else _safe_working_directory()
    if not working_directory:
        raise CommandError("A safe working directory could not be found to execute command from.")
    if not (is_windows() or is_wsl()):
        command = f"export PATH=$PATH:/usr/local/bin ; {command}"

    logger.debug("exec [%s] in %s", command, working_directory)
    proc = subprocess.run(
        [starter, switch, command],
        cwd=working_directory,
        env={**os.environ, **(env or {})},
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT if merge_error_stream else subprocess.PIPE,
        text=True,
        check=False,
    )
    out = (proc.stdout or "").strip()
    err = (proc.stderr or "").strip()
    if proc.returncode != 0:
        raise CommandError(err or out or f"Command exited with code {proc.returncode}: {command}")
    if not merge_error_stream and err and not out:
        raise CommandError(err)
    return out


def resolve_command_path(command: str) -> list[str]:
    """Absolute paths of *command* found on ``PATH`` (empty if none)."""
    try:
        output = exec_command(("where " if is_windows() else "which ") + command)
    except CommandError:
        found = shutil.which(command)
        return [os.path.abspath(found)] if found else []
    paths = []
    for line in output.splitlines():
        candidate = line.strip()
        if candidate and os.path.isfile(candidate):
            paths.append(os.path.abspath(candidate))
    return paths
