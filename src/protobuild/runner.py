"""Async execution of external commands.

Every external tool (``cargo``, ``wasm-opt``, ``wasm-strip``) is invoked
through the :class:`CommandRunner` protocol so discovery and the build
pipeline can be tested with a fake runner instead of real subprocesses.

:class:`AsyncCommandRunner` is the real implementation. It resolves
executables against an explicit search path (the toolchain ``bin``
directories followed by the inherited ``PATH``) and passes that same path
to the child process, so the parent's ``os.environ`` is never modified.
"""

from __future__ import annotations

import asyncio
import os
import shutil
from pathlib import Path
from typing import Optional, Protocol, Sequence

from protobuild.exceptions import CommandError
from protobuild.models import CommandResult
from protobuild.output import get_output


class CommandRunner(Protocol):
    """Narrow capability interface for running an external command."""

    async def run(
        self,
        command: str,
        args: Sequence[str],
        cwd: Optional[Path] = None,
        check: bool = True,
    ) -> CommandResult:
        """Run *command* with *args* and return its captured result.

        Raises:
            CommandError: If *check* is true and the command exits non-zero,
                or if the executable cannot be started.
        """
        ...


class AsyncCommandRunner:
    """Run commands with :func:`asyncio.create_subprocess_exec`.

    Args:
        search_path: Directories searched before the inherited ``PATH``.
        echo: Log each command line before running it.
    """

    def __init__(self, search_path: Sequence[Path] = (), echo: bool = True) -> None:
        self._search_path = [Path(p) for p in search_path]
        self._echo = echo

    @property
    def path_value(self) -> str:
        """The ``PATH`` string handed to child processes."""
        parts = [str(p) for p in self._search_path]
        inherited = os.environ.get("PATH", "")
        if inherited:
            parts.append(inherited)
        return os.pathsep.join(parts)

    def resolve(self, command: str) -> Optional[str]:
        """Locate *command* on the search path, or return ``None``."""
        return shutil.which(command, path=self.path_value)

    def child_env(self) -> dict[str, str]:
        env = dict(os.environ)
        env["PATH"] = self.path_value
        return env

    async def run(
        self,
        command: str,
        args: Sequence[str],
        cwd: Optional[Path] = None,
        check: bool = True,
    ) -> CommandResult:
        args = [str(a) for a in args]
        executable = self.resolve(command)
        if executable is None:
            raise CommandError(
                command,
                args,
                message=f"Executable '{command}' not found on search path",
            )

        if self._echo:
            get_output().info(f"$ {' '.join([executable, *args])}")

        try:
            proc = await asyncio.create_subprocess_exec(
                executable,
                *args,
                cwd=str(cwd) if cwd is not None else None,
                env=self.child_env(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise CommandError(
                command, args, message=f"Failed to start '{command}': {exc}"
            ) from exc

        stdout_bytes, stderr_bytes = await proc.communicate()
        result = CommandResult(
            command=command,
            args=args,
            exit_code=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout_bytes.decode("utf-8", errors="replace"),
            stderr=stderr_bytes.decode("utf-8", errors="replace"),
        )

        # Tool diagnostics (cargo progress, wasm-opt warnings) are part of the trace.
        for line in result.stderr.splitlines():
            get_output().debug(line)

        if check and not result.ok:
            raise CommandError(command, args, result.exit_code, result.stderr)
        return result
