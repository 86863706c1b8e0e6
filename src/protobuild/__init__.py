"""protobuild -- Build, optimize, and checksum WebAssembly plugins in CI.

This package is a thin orchestration layer over external toolchains. Given a
Cargo workspace it finds every ``cdylib`` target, compiles it for
``wasm32-wasi``, runs it through ``wasm-opt`` and ``wasm-strip``, and writes a
SHA-256 checksum next to each release artifact.

Typical workflow (inside a GitHub Actions job)::

    protobuild build              # install tools, discover, build, hash
    protobuild targets --json     # list what would be built

Modules:
    app: Typer application and console-script entry point.
    models: Pydantic models shared across the package.
    config: Workspace, cache, and data directory resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes per failure category.
    output: stdout/stderr output with GitHub Actions annotations.
    runner: Async subprocess execution behind a narrow protocol.
    toolchain: binaryen and WABT download and extraction.
    discovery: ``cargo metadata`` parsing and cdylib target discovery.
    pipeline: Per-target build, optimize, strip, and hash pipeline.
    checksum: SHA-256 checksum recording.
"""

__version__ = "0.1.0"
