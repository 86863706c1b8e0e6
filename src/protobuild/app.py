"""Typer application and console-script entry point for protobuild.

Commands:

* ``protobuild build`` -- install toolchains, discover cdylib targets, then
  build, optimize, strip, and hash each one into ``<workspace>/builds``.
* ``protobuild targets`` -- discovery only; prints what would be built.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It is the single place where errors are reported:
a :class:`~protobuild.exceptions.ProtobuildError` becomes one failure line
(a ``::error::`` annotation under GitHub Actions) and its exit code, and
anything unexpected produces a crash log.
"""

from __future__ import annotations

import asyncio
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import httpx
import typer

from protobuild import __version__
from protobuild.exit_codes import EXIT_GENERIC_FAILURE, EXIT_INTERRUPTED
from protobuild.models import BuildConfig, BuildResult


app = typer.Typer(
    name="protobuild",
    help="Build, optimize, and checksum WebAssembly plugins from a Cargo workspace.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"protobuild {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~protobuild.output.OutputManager` from
    CLI flags.
    """
    from protobuild.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(
        OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    )


@app.command("build")
def build_command(
    workspace: Optional[str] = typer.Option(
        None, "--workspace", "-w", help="Cargo workspace root (default: $GITHUB_WORKSPACE)."
    ),
    output_dir: Optional[str] = typer.Option(
        None, "--output-dir", help="Output directory name under the workspace root."
    ),
    target: Optional[str] = typer.Option(
        None, "--target", help="Rust target triple (default: wasm32-wasi)."
    ),
    skip_install: bool = typer.Option(
        False, "--skip-install", help="Use wasm-opt and wasm-strip already on PATH."
    ),
) -> None:
    """Build every cdylib package and write artifacts plus checksums."""
    from protobuild.config import resolve_build_config

    config = resolve_build_config(workspace, output_dir, target)
    asyncio.run(run_build(config, install=not skip_install))


@app.command("targets")
def targets_command(
    workspace: Optional[str] = typer.Option(
        None, "--workspace", "-w", help="Cargo workspace root (default: $GITHUB_WORKSPACE)."
    ),
) -> None:
    """List the cdylib targets that ``build`` would produce."""
    from protobuild.config import resolve_build_config
    from protobuild.discovery import find_build_targets
    from protobuild.output import print_table
    from protobuild.runner import AsyncCommandRunner

    config = resolve_build_config(workspace)
    runner = AsyncCommandRunner(echo=False)
    targets = asyncio.run(
        find_build_targets(
            runner,
            config.workspace_root,
            cargo=config.cargo,
            default_opt_level=config.default_opt_level,
        )
    )
    print_table(
        ["package", "artifact", "opt_level"],
        [[t.package_name, t.file_name, t.opt_level] for t in targets],
        title="WebAssembly targets",
    )


async def run_build(
    config: BuildConfig,
    install: bool = True,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> list[BuildResult]:
    """Provision, discover, and build; the whole ``build`` command.

    Args:
        config: The resolved :class:`~protobuild.models.BuildConfig`.
        install: Download binaryen and WABT before building.
        transport: Optional httpx transport forwarded to the installer.

    Returns:
        The :class:`~protobuild.models.BuildResult` list.
    """
    from protobuild.config import get_cache_dir
    from protobuild.discovery import find_build_targets
    from protobuild.output import get_output
    from protobuild.pipeline import build_targets
    from protobuild.runner import AsyncCommandRunner
    from protobuild.toolchain import install_toolchains

    output = get_output()

    if install:
        with output.group("Installing WebAssembly toolchains"):
            bin_dirs = await install_toolchains(get_cache_dir(), transport=transport)
        config = config.model_copy(update={"search_path": bin_dirs})

    runner = AsyncCommandRunner(config.search_path)
    targets = await find_build_targets(
        runner,
        config.workspace_root,
        cargo=config.cargo,
        default_opt_level=config.default_opt_level,
    )
    results = await build_targets(targets, config, runner)
    if results:
        output.success(f"Built {len(results)} artifact(s) into {config.output_dir}")
    return results


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> Optional[str]:
    """Write a crash traceback to disk and return the log file path.

    Returns ``None`` when the data directory is not writable.
    """
    from protobuild.config import get_data_dir

    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    try:
        logs_dir = get_data_dir() / "logs"
        logs_dir.mkdir(parents=True, exist_ok=True)
        log_path = logs_dir / f"crash-{timestamp}.log"
        log_path.write_text(
            "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        )
    except OSError:
        return None
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``protobuild`` console script.

    :class:`~protobuild.exceptions.ProtobuildError` instances are reported
    once through :func:`~protobuild.output.set_failed` and exit with the
    error's ``exit_code``. All other exceptions produce a crash log and a
    generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as exc:
        handle_exception(exc)


def handle_exception(exc: Exception) -> None:
    """Report *exc* as the run's failure and exit."""
    from protobuild.exceptions import ProtobuildError
    from protobuild.output import set_failed

    if isinstance(exc, ProtobuildError):
        set_failed(str(exc))
        sys.exit(exc.exit_code)
    log_path = _write_crash_log(exc)
    if log_path is None:
        set_failed(f"Unexpected error: {exc}")
    else:
        set_failed(f"Unexpected error: {exc}. Debug log: {log_path}")
    sys.exit(EXIT_GENERIC_FAILURE)
