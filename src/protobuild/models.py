"""Canonical Pydantic models shared across all protobuild modules.

Every other module imports its data shapes from here. The models fall into
three groups:

**Cargo metadata models** -- the parsed form of
``cargo metadata --format-version 1 --no-deps``:
    :class:`CargoTarget`, :class:`CargoPackage`, :class:`WorkspaceMetadata`.

**Pipeline models** -- produced and consumed during a run:
    :class:`BuildTarget`, :class:`CommandResult`, :class:`BuildResult`.

**Configuration models**:
    :class:`ToolchainSpec` and :class:`BuildConfig`.

Cargo emits many more keys than we read, so the metadata models ignore
unknown fields. Pipeline records are frozen; they are created once and
passed along, never edited.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


CDYLIB = "cdylib"
"""Cargo crate type that produces a dynamic-library (``.wasm``) artifact."""


# --- Cargo metadata ---


class CargoTarget(BaseModel):
    """A single build target (lib, bin, example, ...) of a Cargo package."""

    model_config = ConfigDict(extra="ignore")

    name: str
    kind: list[str] = Field(default_factory=list)
    crate_types: list[str] = Field(default_factory=list)

    @property
    def is_cdylib(self) -> bool:
        """Whether this target produces a dynamic library."""
        return CDYLIB in self.crate_types


class CargoPackage(BaseModel):
    """A package entry from ``cargo metadata``."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    manifest_path: str
    version: Optional[str] = None
    targets: list[CargoTarget] = Field(default_factory=list)


class WorkspaceMetadata(BaseModel):
    """Parsed ``cargo metadata`` document.

    Only the keys needed for target discovery are modelled. With
    ``--no-deps`` the ``packages`` list already excludes registry
    dependencies, but path dependencies outside the workspace can still
    appear, hence the explicit membership check in
    :meth:`is_member`.
    """

    model_config = ConfigDict(extra="ignore")

    packages: list[CargoPackage] = Field(default_factory=list)
    workspace_members: list[str] = Field(default_factory=list)
    workspace_root: Optional[str] = None
    target_directory: Optional[str] = None

    def is_member(self, package: CargoPackage) -> bool:
        """Return ``True`` if *package* belongs to the current workspace."""
        return package.id in self.workspace_members

    def member_packages(self) -> list[CargoPackage]:
        """Return the packages that are workspace members, in metadata order."""
        return [pkg for pkg in self.packages if self.is_member(pkg)]


# --- Pipeline records ---


class BuildTarget(BaseModel):
    """One buildable WebAssembly artifact.

    Example::

        BuildTarget(package_name="node_plugin", artifact_name="node_plugin", opt_level="s")
    """

    model_config = ConfigDict(frozen=True)

    package_name: str
    artifact_name: str
    opt_level: str = "s"

    @property
    def file_name(self) -> str:
        """The ``.wasm`` file name produced for this target."""
        return f"{self.artifact_name}.wasm"


class CommandResult(BaseModel):
    """Outcome of one external command invocation."""

    model_config = ConfigDict(frozen=True)

    command: str
    args: list[str] = Field(default_factory=list)
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class BuildResult(BaseModel):
    """What a successful per-target pipeline wrote to disk."""

    model_config = ConfigDict(frozen=True)

    target: BuildTarget
    artifact_path: Path
    checksum_path: Path
    checksum: str


# --- Configuration ---


class ToolchainSpec(BaseModel):
    """A pre-built toolchain archive that can be downloaded and extracted.

    ``url_template`` contains a ``{platform}`` placeholder that is filled
    from ``platforms``, keyed by the host identifier (``linux``, ``darwin``,
    ``win32``). Upstream projects disagree on platform names (binaryen says
    ``linux``, WABT says ``ubuntu``), so every toolchain carries its own map.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    url_template: str
    platforms: dict[str, str]
    install_dir: str

    def platform_name(self, host: str) -> str:
        """Map a ``sys.platform`` value to this toolchain's platform name."""
        return self.platforms.get(host, self.platforms["linux"])

    def url_for(self, host: str) -> str:
        """Return the download URL for *host*."""
        return self.url_template.format(
            version=self.version, platform=self.platform_name(host)
        )


class BuildConfig(BaseModel):
    """Resolved configuration for a single run.

    ``search_path`` holds the ``bin`` directories made available by the
    toolchain provisioner. It is threaded into the command runner instead
    of being written to ``os.environ``.
    """

    workspace_root: Path
    output_dir_name: str = "builds"
    target_triple: str = "wasm32-wasi"
    default_opt_level: str = "s"
    cargo: str = "cargo"
    wasm_opt: str = "wasm-opt"
    wasm_strip: str = "wasm-strip"
    search_path: list[Path] = Field(default_factory=list)

    @property
    def output_dir(self) -> Path:
        """Directory receiving the final ``.wasm`` and ``.sha256`` files."""
        return self.workspace_root / self.output_dir_name

    @property
    def release_dir(self) -> Path:
        """Cargo's release output directory for the configured triple."""
        return self.workspace_root / "target" / self.target_triple / "release"
