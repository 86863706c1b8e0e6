"""Shared test fixtures for protobuild.

Provides a fake :class:`~protobuild.runner.CommandRunner`, a builder for
throwaway Cargo workspaces, and isolation from the GitHub Actions
environment the suite itself may be running in. These fixtures are
discovered by pytest automatically.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Optional, Sequence, Union

import pytest

from protobuild.exceptions import CommandError
from protobuild.models import CommandResult
from protobuild.output import OutputManager, reset_output, set_output


Handler = Callable[[list[str]], Union[CommandResult, str, None]]


# ---------------------------------------------------------------------------
# Environment isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _isolate_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tests away from CI variables and the real user directories."""
    for var in ["GITHUB_ACTIONS", "GITHUB_PATH", "GITHUB_WORKSPACE", "NO_COLOR"]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "xdg-cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg-data"))


@pytest.fixture(autouse=True)
def _quiet_output() -> None:
    """Install a quiet, plain OutputManager and reset it afterwards."""
    set_output(OutputManager(no_color=True, quiet=True, annotate=False))
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Fake command runner
# ---------------------------------------------------------------------------


class FakeRunner:
    """In-memory :class:`~protobuild.runner.CommandRunner`.

    Every call is recorded in :attr:`calls`. A handler registered for the
    command name may return a :class:`CommandResult`, a stdout string, or
    ``None`` (success with empty output).
    """

    def __init__(self, handlers: Optional[dict[str, Handler]] = None) -> None:
        self.handlers: dict[str, Handler] = dict(handlers or {})
        self.calls: list[tuple[str, list[str]]] = []

    async def run(
        self,
        command: str,
        args: Sequence[str],
        cwd: Optional[Path] = None,
        check: bool = True,
    ) -> CommandResult:
        args = [str(a) for a in args]
        self.calls.append((command, args))

        handler = self.handlers.get(command)
        outcome = handler(args) if handler else None
        if outcome is None:
            result = CommandResult(command=command, args=args, exit_code=0)
        elif isinstance(outcome, str):
            result = CommandResult(command=command, args=args, exit_code=0, stdout=outcome)
        else:
            result = outcome

        if check and not result.ok:
            raise CommandError(command, args, result.exit_code, result.stderr)
        return result


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


# ---------------------------------------------------------------------------
# Cargo workspace builder
# ---------------------------------------------------------------------------


def _manifest_text(name: str, crate_types: list[str], opt_level: Any) -> str:
    lines = [
        "[package]",
        f'name = "{name}"',
        'version = "0.1.0"',
        'edition = "2021"',
        "",
    ]
    if crate_types:
        types = ", ".join(f'"{t}"' for t in crate_types)
        lines += ["[lib]", f"crate-type = [{types}]", ""]
    if opt_level is not None:
        value = f'"{opt_level}"' if isinstance(opt_level, str) else str(opt_level)
        lines += ["[profile.release]", f"opt-level = {value}", ""]
    return "\n".join(lines)


class Workspace:
    """A Cargo workspace on disk plus the matching ``cargo metadata`` JSON."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.packages: list[dict[str, Any]] = []
        self.members: list[str] = []

    def add_package(
        self,
        name: str,
        crate_types: Optional[list[str]] = None,
        opt_level: Any = None,
        member: bool = True,
        manifest: Optional[str] = None,
    ) -> Path:
        """Write a package manifest and register it in the metadata."""
        crate_types = ["cdylib"] if crate_types is None else crate_types
        pkg_dir = self.root / "crates" / name
        pkg_dir.mkdir(parents=True, exist_ok=True)
        manifest_path = pkg_dir / "Cargo.toml"
        manifest_path.write_text(
            manifest if manifest is not None else _manifest_text(name, crate_types, opt_level)
        )

        pkg_id = f"path+file://{pkg_dir}#{name}@0.1.0"
        target_name = name.replace("-", "_")
        self.packages.append(
            {
                "id": pkg_id,
                "name": name,
                "version": "0.1.0",
                "manifest_path": str(manifest_path),
                "dependencies": [],
                "targets": [
                    {
                        "name": target_name,
                        "kind": crate_types or ["lib"],
                        "crate_types": crate_types or ["lib"],
                        "src_path": str(pkg_dir / "src" / "lib.rs"),
                        "edition": "2021",
                    }
                ],
            }
        )
        if member:
            self.members.append(pkg_id)
        return manifest_path

    def metadata_json(self) -> str:
        return json.dumps(
            {
                "packages": self.packages,
                "workspace_members": self.members,
                "resolve": None,
                "target_directory": str(self.root / "target"),
                "version": 1,
                "workspace_root": str(self.root),
                "metadata": None,
            }
        )


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    """An empty Cargo workspace rooted at ``tmp_path / "repo"``."""
    root = tmp_path / "repo"
    root.mkdir()
    (root / "Cargo.toml").write_text('[workspace]\nmembers = ["crates/*"]\n')
    return Workspace(root)
