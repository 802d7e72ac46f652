"""
Base Protocol and Types for External Corpus Tools.

Every heavy step of the recipe (manifest preparation, BPE training,
n-gram estimation, graph compilation) is done by an external program.
This module defines the interface those programs are wrapped in:
invoke with arguments, capture the exit status, optionally capture
stdout to a file.

Usage
-----
    from tools.base import BaseCorpusTool, ToolResult

    class MyTool(BaseCorpusTool):
        name = 'my_tool'
        default_command = ['my-tool']

    result = MyTool().run(['--input', 'a.txt'])
"""
from __future__ import annotations

import shutil
import subprocess
import sys
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional, Protocol, Sequence, Union, runtime_checkable

sys.path.insert(0, str(Path(__file__).parent.parent))

from utils.helpers import atomic_output, format_command, log


# Exit codes used when the process never produced one
EXIT_TIMEOUT = 124
EXIT_NOT_FOUND = 127


class ToolError(RuntimeError):
    """
    Raised when an external tool exits with a non-zero status.

    Attributes
    ----------
    tool : str
        Tool name
    command : list[str]
        Full command line that was run
    returncode : int
        Exit status (124 on timeout, 127 if the executable is missing)
    """

    def __init__(self, tool: str, command: Sequence[str], returncode: int, message: str = ''):
        self.tool = tool
        self.command = [str(c) for c in command]
        self.returncode = returncode
        detail = message or f"exited with status {returncode}"
        super().__init__(f"{tool}: {detail}: {format_command(self.command)}")


@dataclass
class ToolResult:
    """
    Outcome of one tool invocation.

    Attributes
    ----------
    tool : str
        Tool name
    command : list[str]
        Full command line
    returncode : int
        Exit status
    stdout : str or None
        Captured standard output (None when streamed to the terminal
        or redirected to a file)
    stdout_path : str or None
        File that received standard output, if any
    elapsed_seconds : float
        Wall-clock duration
    """

    tool: str
    command: list = field(default_factory=list)
    returncode: int = 0
    stdout: Optional[str] = None
    stdout_path: Optional[str] = None
    elapsed_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return asdict(self)


@runtime_checkable
class CorpusTool(Protocol):
    """
    Protocol for external corpus-processing tools.

    Attributes
    ----------
    name : str
        Tool identifier (e.g., 'lhotse', 'kaldilm')

    Methods
    -------
    run(args, stdout_path, capture)
        Invoke the tool; raise ToolError on non-zero exit.
    validate_installation()
        Check if the tool can be executed.
    """

    name: str

    def run(
        self,
        args: Sequence[Union[str, Path]],
        stdout_path: Optional[Path] = None,
        capture: bool = False,
    ) -> ToolResult:
        ...

    def validate_installation(self) -> tuple[bool, str]:
        ...


class BaseCorpusTool:
    """
    Subprocess-backed implementation of CorpusTool.

    Parameters
    ----------
    command : list[str], optional
        Command prefix; defaults to the class's ``default_command``
    timeout : float, optional
        Seconds before the invocation is killed (None = no limit)
    cwd : Path, optional
        Working directory for the child process
    echo : bool
        Print each command before running it
    """

    name = 'base'
    default_command: list = []

    def __init__(
        self,
        command: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
        cwd: Optional[Path] = None,
        echo: bool = True,
    ):
        self.command = [str(c) for c in (command or self.default_command)]
        if not self.command:
            raise ValueError(f"No command configured for tool '{self.name}'")
        self.timeout = timeout
        self.cwd = cwd
        self.echo = echo
        self.calls: list[ToolResult] = []

    def __repr__(self) -> str:
        return f"{type(self).__name__}(command={self.command!r})"

    def build_command(self, args: Sequence[Union[str, Path]]) -> list[str]:
        """Full command line for a set of arguments."""
        return self.command + [str(a) for a in args]

    def validate_installation(self) -> tuple[bool, str]:
        """
        Check that the executable can be found.

        Returns
        -------
        tuple[bool, str]
            (is_available, message)
        """
        executable = self.command[0]
        if shutil.which(executable) is None and not Path(executable).exists():
            return False, f"'{executable}' not found on PATH"

        for part in self.command[1:]:
            if part.endswith('.py') and not self._resolve(part).exists():
                return False, f"script not found: {self._resolve(part)}"

        return True, f"{self.name} ready ({format_command(self.command)})"

    def _resolve(self, part: str) -> Path:
        path = Path(part)
        if self.cwd is not None and not path.is_absolute():
            return Path(self.cwd) / path
        return path

    def run(
        self,
        args: Sequence[Union[str, Path]],
        stdout_path: Optional[Path] = None,
        capture: bool = False,
    ) -> ToolResult:
        """
        Run the tool and wait for it to exit.

        Parameters
        ----------
        args : list
            Arguments appended to the command prefix
        stdout_path : Path, optional
            Write standard output to this file; the file is replaced
            only if the tool succeeds
        capture : bool
            Capture standard output into ``ToolResult.stdout``

        Returns
        -------
        ToolResult

        Raises
        ------
        ToolError
            If the tool exits non-zero, times out or cannot be started
        """
        command = self.build_command(args)
        if self.echo:
            suffix = f" > {stdout_path}" if stdout_path else ''
            log(f"+ {format_command(command)}{suffix}")

        start = time.time()
        if stdout_path is not None:
            # Output file is only renamed into place if the block exits cleanly
            with atomic_output(Path(stdout_path)) as tmp:
                with open(tmp, 'w') as out:
                    proc = self._run_subprocess(command, stdout=out)
                result = self._record(command, proc.returncode, start, stdout_path=stdout_path)
                if not result.ok:
                    raise ToolError(self.name, command, result.returncode)
        else:
            proc = self._run_subprocess(command, stdout=subprocess.PIPE if capture else None)
            result = self._record(
                command, proc.returncode, start,
                stdout=proc.stdout if capture else None,
            )
            if not result.ok:
                raise ToolError(self.name, command, result.returncode)

        return result

    def _record(
        self,
        command: list[str],
        returncode: int,
        start: float,
        stdout: Optional[str] = None,
        stdout_path: Optional[Path] = None,
    ) -> ToolResult:
        result = ToolResult(
            tool=self.name,
            command=command,
            returncode=returncode,
            stdout=stdout,
            stdout_path=str(stdout_path) if stdout_path else None,
            elapsed_seconds=round(time.time() - start, 3),
        )
        self.calls.append(result)
        return result

    def _run_subprocess(self, command: list[str], stdout=None) -> subprocess.CompletedProcess:
        """
        Run an external command, mapping launch failures to ToolError.

        Raises
        ------
        ToolError
            If the command times out or its executable is missing
        """
        try:
            return subprocess.run(
                command,
                stdout=stdout,
                text=True,
                timeout=self.timeout,
                cwd=self.cwd,
            )
        except subprocess.TimeoutExpired:
            raise ToolError(
                self.name, command, EXIT_TIMEOUT,
                f"timed out after {self.timeout}s",
            )
        except FileNotFoundError:
            raise ToolError(
                self.name, command, EXIT_NOT_FOUND,
                f"command not found: {command[0]}",
            )
