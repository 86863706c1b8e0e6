"""Exception hierarchy for protobuild.

All exceptions inherit from :class:`ProtobuildError`, which carries an
``exit_code`` attribute mapped to a constant from
:mod:`protobuild.exit_codes`. Nothing in the package retries or recovers:
every error unwinds to :func:`protobuild.app.main`, which reports the message
once and exits with the matching code.

Subclass hierarchy::

    ProtobuildError (exit 1)
    +-- ConfigError         (exit 2)
    +-- DownloadError       (exit 3)
    +-- ManifestError       (exit 4)
    +-- CommandError        (exit 5)
    +-- BuildFailedError    (exit 5)
    +-- FileSystemError     (exit 6)
    |   +-- OutputExistsError (exit 6)
    +-- ChecksumError       (exit 7)
"""

from __future__ import annotations

from protobuild.exit_codes import (
    EXIT_CHECKSUM_ERROR,
    EXIT_COMMAND_FAILED,
    EXIT_CONFIG_ERROR,
    EXIT_DOWNLOAD_ERROR,
    EXIT_FILESYSTEM_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_MANIFEST_ERROR,
)


class ProtobuildError(Exception):
    """Base exception for all protobuild errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`protobuild.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(ProtobuildError):
    """Raised when the run cannot be configured (e.g. no workspace root)."""

    exit_code = EXIT_CONFIG_ERROR


class DownloadError(ProtobuildError):
    """Raised when a toolchain archive fails to download or extract."""

    exit_code = EXIT_DOWNLOAD_ERROR


class ManifestError(ProtobuildError):
    """Raised for malformed ``cargo metadata`` output or ``Cargo.toml`` files."""

    exit_code = EXIT_MANIFEST_ERROR


class CommandError(ProtobuildError):
    """Raised when an external command exits non-zero or cannot be started.

    Args:
        command: The executable name that was invoked.
        args: Arguments passed to the executable.
        returncode: Process exit status, or ``None`` if it never started.
        stderr: Captured standard error, included in the message tail.
    """

    exit_code = EXIT_COMMAND_FAILED

    def __init__(
        self,
        command: str,
        args: list[str],
        returncode: int | None = None,
        stderr: str = "",
        message: str | None = None,
    ):
        self.command = command
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = stderr
        if message is None:
            cmdline = " ".join([command, *args])
            message = f"Command '{cmdline}' failed with exit code {returncode}"
            tail = stderr.strip().splitlines()[-5:]
            if tail:
                message += ":\n" + "\n".join(tail)
        super().__init__(message)


class BuildFailedError(ProtobuildError):
    """Raised when more than one target pipeline failed.

    Args:
        failures: Mapping of ``package/artifact`` label to the exception
            that target raised.
    """

    exit_code = EXIT_COMMAND_FAILED

    def __init__(self, failures: dict[str, BaseException]):
        self.failures = failures
        names = ", ".join(sorted(failures))
        super().__init__(f"{len(failures)} targets failed to build: {names}")


class FileSystemError(ProtobuildError):
    """Raised when the output directory cannot be created or written."""

    exit_code = EXIT_FILESYSTEM_ERROR


class OutputExistsError(FileSystemError):
    """Raised when the output directory already exists before a build."""


class ChecksumError(ProtobuildError):
    """Raised when an artifact cannot be read or its checksum file written."""

    exit_code = EXIT_CHECKSUM_ERROR
