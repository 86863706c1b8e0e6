"""Directory layout and run configuration.

This module resolves everything a run needs before doing any work:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.protobuild/`` on macOS and Windows. Toolchain archives are extracted
  under :func:`get_cache_dir`; crash logs go under :func:`get_data_dir`.
* **Workspace root** -- :func:`resolve_workspace_root` applies the
  precedence CLI flag > ``GITHUB_WORKSPACE``.
* **Build configuration** -- :func:`resolve_build_config` validates the
  inputs and produces a :class:`~protobuild.models.BuildConfig`.
"""

from __future__ import annotations

import os
import platform
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from protobuild.exceptions import ConfigError
from protobuild.models import BuildConfig

_APP_NAME = "protobuild"
WORKSPACE_ENV_VAR = "GITHUB_WORKSPACE"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    Holds extracted toolchains. Everything here is re-downloaded on every
    run and can be deleted at any time.

    On Linux/BSD: ``$XDG_CACHE_HOME/protobuild/`` (default ``~/.cache/protobuild/``).
    On macOS/Windows: ``~/.protobuild/cache/``.

    Returns:
        Absolute path to the cache directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_CACHE_HOME", (".cache",))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/protobuild/`` (default ``~/.local/share/protobuild/``).
    On macOS/Windows: ``~/.protobuild/data/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_DATA_HOME", (".local", "share"))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Precedence resolution ---


def resolve_workspace_root(cli_workspace: Optional[str] = None) -> Path:
    """Resolve the Cargo workspace root.

    Precedence (high to low):
        1. ``--workspace`` CLI flag
        2. ``GITHUB_WORKSPACE`` environment variable

    Args:
        cli_workspace: Value of the ``--workspace`` flag, if given.

    Returns:
        The absolute workspace root.

    Raises:
        ConfigError: If neither source is set or the path is not a directory.
    """
    raw = cli_workspace or os.environ.get(WORKSPACE_ENV_VAR)
    if not raw:
        raise ConfigError(
            f"No workspace root: pass --workspace or set {WORKSPACE_ENV_VAR}"
        )
    root = Path(raw).expanduser().resolve()
    if not root.is_dir():
        raise ConfigError(f"Workspace root is not a directory: {root}")
    return root


def resolve_build_config(
    cli_workspace: Optional[str] = None,
    cli_output_dir: Optional[str] = None,
    cli_target: Optional[str] = None,
) -> BuildConfig:
    """Resolve the effective :class:`~protobuild.models.BuildConfig`.

    CLI flags override the model defaults. The output directory must be a
    plain directory name; it is always created directly under the
    workspace root.

    Raises:
        ConfigError: On a missing workspace or invalid option values.
    """
    root = resolve_workspace_root(cli_workspace)

    overrides: dict[str, object] = {"workspace_root": root}
    if cli_output_dir is not None:
        if (
            cli_output_dir in ("", ".", "..")
            or Path(cli_output_dir).name != cli_output_dir
        ):
            raise ConfigError(
                f"Output directory must be a plain directory name, got '{cli_output_dir}'"
            )
        overrides["output_dir_name"] = cli_output_dir
    if cli_target is not None:
        overrides["target_triple"] = cli_target

    try:
        return BuildConfig.model_validate(overrides)
    except ValidationError as exc:
        raise ConfigError(f"Invalid build configuration: {exc}") from exc
