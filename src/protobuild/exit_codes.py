"""Numeric process exit codes, one per failure category.

Each constant maps to a :class:`~protobuild.exceptions.ProtobuildError`
subclass. CI scripts can branch on the exit code to tell a network hiccup
apart from a broken manifest without parsing the log.

Example::

    $ protobuild build
    $ echo $?
    5   # EXIT_COMMAND_FAILED -- cargo, wasm-opt, or wasm-strip failed
"""

EXIT_SUCCESS = 0
"""The run completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_CONFIG_ERROR = 2
"""The run was misconfigured (no workspace, bad option values)."""

EXIT_DOWNLOAD_ERROR = 3
"""A toolchain archive could not be downloaded or extracted."""

EXIT_MANIFEST_ERROR = 4
"""``cargo metadata`` output or a ``Cargo.toml`` could not be parsed."""

EXIT_COMMAND_FAILED = 5
"""An external command exited non-zero or could not be started."""

EXIT_FILESYSTEM_ERROR = 6
"""The output directory could not be created or written."""

EXIT_CHECKSUM_ERROR = 7
"""An artifact could not be hashed or its checksum could not be written."""

EXIT_INTERRUPTED = 130
"""The run was interrupted with Ctrl-C."""
