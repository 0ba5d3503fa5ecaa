"""Tests for running external commands and the Core Tools integration."""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from az_toolkit.commands import exec_command, resolve_command_path
from az_toolkit.exceptions import AzureExecutionError, CommandError
from az_toolkit.functions import core_tools


def _completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> MagicMock:
    return MagicMock(returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture()
def posix():
    with (
        patch("az_toolkit.commands.is_windows", return_value=False),
        patch("az_toolkit.commands.is_wsl", return_value=False),
    ):
        yield


class TestExecCommand:
    def test_returns_trimmed_stdout(self, posix) -> None:
        with patch("az_toolkit.commands.subprocess.run", return_value=_completed(stdout="4.0.1\n")) as run:
            assert exec_command("func --version") == "4.0.1"
        argv = run.call_args.args[0]
        assert argv[:2] == ["/bin/sh", "-c"]
        assert argv[2] == "export PATH=$PATH:/usr/local/bin ; func --version"
        assert run.call_args.kwargs["cwd"] == "/bin/"
        assert run.call_args.kwargs["stderr"] == subprocess.PIPE

    def test_windows_shell(self) -> None:
        with (
            patch("az_toolkit.commands.is_windows", return_value=True),
            patch.dict("os.environ", {"SystemRoot": "C:\\Windows"}),
            patch("az_toolkit.commands.subprocess.run", return_value=_completed(stdout="ok")) as run,
        ):
            exec_command("where func")
        assert run.call_args.args[0] == ["cmd.exe", "/c", "where func"]

    def test_non_zero_exit(self, posix) -> None:
        with patch("az_toolkit.commands.subprocess.run", return_value=_completed(1, stderr="not found")):
            with pytest.raises(CommandError, match="not found"):
                exec_command("func")

    def test_stderr_only_is_failure(self, posix) -> None:
        with patch("az_toolkit.commands.subprocess.run", return_value=_completed(stderr="warning")):
            with pytest.raises(CommandError, match="warning"):
                exec_command("func")

    def test_merge_error_stream(self, posix, tmp_path: Path) -> None:
        with patch("az_toolkit.commands.subprocess.run", return_value=_completed(stdout="done")) as run:
            assert exec_command("func", cwd=tmp_path, merge_error_stream=True) == "done"
        assert run.call_args.kwargs["stderr"] == subprocess.STDOUT
        assert run.call_args.kwargs["cwd"] == str(tmp_path)

    def test_env_is_merged(self, posix) -> None:
        with patch("az_toolkit.commands.subprocess.run", return_value=_completed(stdout="x")) as run:
            exec_command("func", env={"FOO": "bar"})
        assert run.call_args.kwargs["env"]["FOO"] == "bar"


class TestResolveCommandPath:
    def test_existing_files_only(self, posix, tmp_path: Path) -> None:
        real = tmp_path / "func"
        real.write_text("")
        output = f"{real}\n{tmp_path / 'missing'}\n"
        with patch("az_toolkit.commands.exec_command", return_value=output):
            assert resolve_command_path("func") == [str(real)]

    def test_falls_back_to_shutil_which(self, posix) -> None:
        with (
            patch("az_toolkit.commands.exec_command", side_effect=CommandError("no which")),
            patch("az_toolkit.commands.shutil.which", return_value=None),
        ):
            assert resolve_command_path("func") == []


class TestCoreTools:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("4.0.5455", (4, 0, 5455)),
            ("2.7.1846 (preview)", (2, 7, 1846)),
            ("", None),
            ("unknown", None),
        ],
    )
    def test_parse_version(self, text: str, expected: tuple | None) -> None:
        assert core_tools.parse_version(text) == expected

    def test_missing_core_tools(self) -> None:
        with patch("az_toolkit.functions.core_tools.exec_command", side_effect=CommandError("func: not found")):
            with pytest.raises(AzureExecutionError, match="Core Tools does not exist or is too old"):
                core_tools.check_version()

    def test_too_old(self) -> None:
        with patch("az_toolkit.functions.core_tools.exec_command", return_value="2.0.0"):
            with pytest.raises(AzureExecutionError):
                core_tools.check_version()

    def test_install_extension(self, tmp_path: Path) -> None:
        staging = tmp_path / "staging"
        with patch("az_toolkit.functions.core_tools.exec_command", side_effect=["4.0.1", "installed"]) as cmd:
            core_tools.install_extension(staging, tmp_path)
        command = cmd.call_args.args[0]
        assert command == f'func extensions install -c "{staging}" --java'
        assert cmd.call_args.kwargs == {"cwd": tmp_path, "merge_error_stream": True}

    def test_install_failure(self, tmp_path: Path) -> None:
        with patch(
            "az_toolkit.functions.core_tools.exec_command",
            side_effect=["4.0.1", CommandError("restore failed")],
        ):
            with pytest.raises(AzureExecutionError, match="Failed to install the Function extensions"):
                core_tools.install_extension(tmp_path, tmp_path)
