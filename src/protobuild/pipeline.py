"""Per-target build, optimize, strip, and hash pipeline.

:func:`build_targets` creates the shared output directory, then runs one
pipeline per :class:`~protobuild.models.BuildTarget` concurrently::

    cargo build --release --package <pkg> --target wasm32-wasi
    wasm-opt -O<level> target/wasm32-wasi/release/<artifact>.wasm --output builds/<artifact>.wasm
    wasm-strip builds/<artifact>.wasm
    sha256(builds/<artifact>.wasm) -> builds/<artifact>.wasm.sha256

Steps inside a pipeline are strictly sequential. Pipelines share nothing
but the output directory and write disjoint files. All pipelines are
awaited even when one fails, so a failure never cancels a sibling's
in-flight subprocess; the run then fails with the collected errors.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Sequence

from protobuild.checksum import write_checksum
from protobuild.exceptions import BuildFailedError, FileSystemError, OutputExistsError
from protobuild.models import BuildConfig, BuildResult, BuildTarget
from protobuild.output import get_output
from protobuild.runner import CommandRunner


def create_output_dir(path: Path) -> None:
    """Create the output directory, refusing to reuse an existing one.

    Raises:
        OutputExistsError: If *path* already exists.
        FileSystemError: For any other failure (permissions, missing parent).
    """
    try:
        path.mkdir()
    except FileExistsError as exc:
        raise OutputExistsError(
            f"Output directory {path} already exists; remove it before building"
        ) from exc
    except OSError as exc:
        raise FileSystemError(f"Cannot create output directory {path}: {exc}") from exc


async def build_target(
    target: BuildTarget,
    config: BuildConfig,
    runner: CommandRunner,
) -> BuildResult:
    """Run the full pipeline for a single target."""
    output = get_output()
    package = target.package_name

    output.debug(
        f"Building {package} (mode=release, target={config.target_triple})"
    )
    await runner.run(
        config.cargo,
        [
            "build",
            "--release",
            "--package",
            package,
            "--target",
            config.target_triple,
        ],
        cwd=config.workspace_root,
    )

    output.debug(f"Optimizing {package} (level={target.opt_level})")
    input_file = config.release_dir / target.file_name
    output_file = config.output_dir / target.file_name
    await runner.run(
        config.wasm_opt,
        [f"-O{target.opt_level}", str(input_file), "--output", str(output_file)],
        cwd=config.workspace_root,
    )

    output.debug(f"Stripping {package}")
    await runner.run(config.wasm_strip, [str(output_file)], cwd=config.workspace_root)

    output.debug(f"Hashing {package} (checksum=sha256)")
    checksum_file, digest = await asyncio.to_thread(write_checksum, output_file)

    output.info(package)
    output.info(f"--> {output_file}")
    output.info(f"--> {checksum_file}")
    output.info(f"--> {digest}")

    return BuildResult(
        target=target,
        artifact_path=output_file,
        checksum_path=checksum_file,
        checksum=digest,
    )


async def build_targets(
    targets: Sequence[BuildTarget],
    config: BuildConfig,
    runner: CommandRunner,
) -> list[BuildResult]:
    """Build every target concurrently into ``config.output_dir``.

    Returns:
        One :class:`~protobuild.models.BuildResult` per target, in the order
        of *targets*.

    Raises:
        OutputExistsError: If the output directory already exists. Raised
            before any subprocess runs.
        FileSystemError: If the output directory cannot be created.
        ProtobuildError: The failure of a single target, re-raised as is.
        BuildFailedError: When several targets failed.
    """
    output = get_output()
    create_output_dir(config.output_dir)

    if not targets:
        output.info("Nothing to build")
        return []

    output.info(
        "Building packages: " + ", ".join(t.package_name for t in targets)
    )

    outcomes = await asyncio.gather(
        *(build_target(t, config, runner) for t in targets),
        return_exceptions=True,
    )

    results: list[BuildResult] = []
    failures: dict[str, BaseException] = {}
    for target, outcome in zip(targets, outcomes):
        if isinstance(outcome, BaseException):
            failures[f"{target.package_name}/{target.artifact_name}"] = outcome
        else:
            results.append(outcome)

    # A lone failure is reported once, by the caller.
    if len(failures) == 1:
        raise next(iter(failures.values()))
    if failures:
        for label, exc in failures.items():
            output.warning(f"{label} failed: {exc}")
        raise BuildFailedError(failures)
    return results
