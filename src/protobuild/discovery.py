"""Find buildable WebAssembly targets in a Cargo workspace.

Discovery runs ``cargo metadata --format-version 1 --no-deps`` through a
:class:`~protobuild.runner.CommandRunner`, validates the JSON document
into :class:`~protobuild.models.WorkspaceMetadata`, then reads every
workspace member's ``Cargo.toml`` to pick up its release ``opt-level``.

Each target whose ``crate_types`` include ``cdylib`` becomes one
:class:`~protobuild.models.BuildTarget`. Any parse or read failure is
fatal for the whole run; there is no per-package isolation.
"""

from __future__ import annotations

import asyncio
import json
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from protobuild.exceptions import ManifestError
from protobuild.models import BuildTarget, CargoPackage, WorkspaceMetadata
from protobuild.output import get_output
from protobuild.runner import CommandRunner

DEFAULT_OPT_LEVEL = "s"

# Levels accepted by both Cargo's opt-level and wasm-opt's -O flag.
VALID_OPT_LEVELS = frozenset({"0", "1", "2", "3", "4", "s", "z"})

METADATA_ARGS = ["metadata", "--format-version", "1", "--no-deps"]


def parse_metadata(raw: str) -> WorkspaceMetadata:
    """Parse the stdout of ``cargo metadata`` into a model.

    Raises:
        ManifestError: If *raw* is not valid JSON or has the wrong shape.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ManifestError(f"Invalid cargo metadata output: {exc}") from exc
    try:
        return WorkspaceMetadata.model_validate(data)
    except ValidationError as exc:
        raise ManifestError(f"Unexpected cargo metadata format: {exc}") from exc


def read_manifest(path: Path) -> dict[str, Any]:
    """Read and parse a ``Cargo.toml`` file.

    Raises:
        ManifestError: If the file cannot be read or is not valid TOML.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ManifestError(f"Cannot read manifest {path}: {exc}") from exc
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ManifestError(f"Invalid manifest {path}: {exc}") from exc


def release_opt_level(
    manifest: dict[str, Any],
    default: str = DEFAULT_OPT_LEVEL,
    source: str = "Cargo.toml",
) -> str:
    """Return ``[profile.release] opt-level`` as a string, or *default*.

    Cargo accepts both integers (``opt-level = 3``) and strings
    (``opt-level = "z"``); both are normalised to ``str``.

    Raises:
        ManifestError: If the profile table is malformed or the level is
            not one ``wasm-opt`` understands.
    """
    profile = manifest.get("profile", {})
    if not isinstance(profile, dict):
        raise ManifestError(f"Invalid [profile] section in {source}")
    release = profile.get("release", {})
    if not isinstance(release, dict):
        raise ManifestError(f"Invalid [profile.release] section in {source}")

    level = release.get("opt-level")
    if level is None:
        return default
    if isinstance(level, bool):
        raise ManifestError(f"Invalid opt-level {level!r} in {source}")

    level = str(level)
    if level not in VALID_OPT_LEVELS:
        raise ManifestError(
            f"Unsupported opt-level '{level}' in {source} "
            f"(expected one of {', '.join(sorted(VALID_OPT_LEVELS))})"
        )
    return level


async def _package_targets(package: CargoPackage, default: str) -> list[BuildTarget]:
    cdylibs = [t for t in package.targets if t.is_cdylib]
    manifest_path = Path(package.manifest_path)
    manifest = await asyncio.to_thread(read_manifest, manifest_path)
    opt_level = release_opt_level(manifest, default, source=str(manifest_path))
    return [
        BuildTarget(
            package_name=package.name,
            artifact_name=target.name,
            opt_level=opt_level,
        )
        for target in cdylibs
    ]


async def targets_from_metadata(
    metadata: WorkspaceMetadata,
    default_opt_level: str = DEFAULT_OPT_LEVEL,
) -> list[BuildTarget]:
    """Build the target list for every workspace member in *metadata*.

    Manifests are read concurrently. The result is sorted by package and
    artifact name so logs are stable between runs.
    """
    per_package = await asyncio.gather(
        *(
            _package_targets(pkg, default_opt_level)
            for pkg in metadata.member_packages()
        )
    )
    targets = [t for group in per_package for t in group]
    return sorted(targets, key=lambda t: (t.package_name, t.artifact_name))


async def find_build_targets(
    runner: CommandRunner,
    workspace_root: Path,
    cargo: str = "cargo",
    default_opt_level: str = DEFAULT_OPT_LEVEL,
) -> list[BuildTarget]:
    """Discover every cdylib target in the workspace at *workspace_root*.

    Returns:
        The build targets; empty when the workspace has no cdylib crates.

    Raises:
        CommandError: If ``cargo metadata`` fails.
        ManifestError: On malformed metadata or manifests.
    """
    output = get_output()
    output.info("Finding buildable packages in Cargo workspace")

    result = await runner.run(cargo, METADATA_ARGS, cwd=workspace_root)
    metadata = parse_metadata(result.stdout)
    targets = await targets_from_metadata(metadata, default_opt_level)

    if targets:
        output.debug(
            "Found targets: "
            + ", ".join(f"{t.package_name}/{t.artifact_name}" for t in targets)
        )
    else:
        output.info("No cdylib targets found in workspace")
    return targets
