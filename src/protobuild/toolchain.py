"""Download and extract the WebAssembly binary toolchains.

Two upstream projects are installed from pre-built release archives:

* `binaryen <https://github.com/WebAssembly/binaryen>`_ -- provides
  ``wasm-opt``.
* `WABT <https://github.com/WebAssembly/wabt>`_ -- provides ``wasm-strip``.

Archives are fetched with :class:`httpx.AsyncClient`, streamed to a
temporary file, and extracted under the cache directory. There is no
existing-install check and no retry: every run downloads fresh copies and
any failure aborts the run with :class:`~protobuild.exceptions.DownloadError`.

:func:`install_toolchains` returns the extracted ``bin`` directories. The
caller threads them into :class:`~protobuild.runner.AsyncCommandRunner`;
this module never touches ``os.environ``.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import sys
import tarfile
import tempfile
from pathlib import Path
from typing import Optional, Sequence

import httpx

from protobuild.exceptions import DownloadError
from protobuild.models import ToolchainSpec
from protobuild.output import get_output


BINARYEN = ToolchainSpec(
    name="binaryen",
    version="version_116",
    url_template=(
        "https://github.com/WebAssembly/binaryen/releases/download/"
        "{version}/binaryen-{version}-x86_64-{platform}.tar.gz"
    ),
    platforms={"linux": "linux", "darwin": "macos", "win32": "windows"},
    install_dir="binaryen",
)

WABT = ToolchainSpec(
    name="wabt",
    version="1.0.34",
    url_template=(
        "https://github.com/WebAssembly/wabt/releases/download/"
        "{version}/wabt-{version}-{platform}.tar.gz"
    ),
    platforms={"linux": "ubuntu", "darwin": "macos", "win32": "windows"},
    install_dir="wabt",
)

DEFAULT_TOOLCHAINS: tuple[ToolchainSpec, ...] = (WABT, BINARYEN)

_CHUNK_SIZE = 1024 * 64


class ToolchainInstaller:
    """Install :class:`~protobuild.models.ToolchainSpec` archives.

    Args:
        cache_dir: Directory under which each toolchain is extracted.
        host: ``sys.platform`` value used to pick the archive flavour.
        transport: Optional httpx transport, used by tests to serve
            archives without network access.
    """

    def __init__(
        self,
        cache_dir: Path,
        host: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._cache_dir = cache_dir
        self._host = host or sys.platform
        self._transport = transport

    async def install_all(self, specs: Sequence[ToolchainSpec]) -> list[Path]:
        """Install every toolchain concurrently and return their ``bin`` dirs.

        The returned list follows the order of *specs*.
        """
        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=None,
            transport=self._transport,
        ) as client:
            return list(
                await asyncio.gather(*(self.install(client, spec) for spec in specs))
            )

    async def install(self, client: httpx.AsyncClient, spec: ToolchainSpec) -> Path:
        """Download and extract one toolchain, returning its ``bin`` directory."""
        output = get_output()
        url = spec.url_for(self._host)
        output.info(f"Installing {spec.name} {spec.version}")
        output.debug(f"Downloading {url}")

        fd, tmp_name = tempfile.mkstemp(suffix=".tar.gz", prefix=f"{spec.name}-")
        os.close(fd)
        archive = Path(tmp_name)
        try:
            await self._download(client, url, archive)
            dest = self._cache_dir / spec.install_dir
            await asyncio.to_thread(_extract_tar, archive, dest)
        finally:
            archive.unlink(missing_ok=True)

        bin_dir = find_bin_dir(dest)
        output.debug(f"Installed {spec.name} to {bin_dir}")
        return bin_dir

    async def _download(self, client: httpx.AsyncClient, url: str, target: Path) -> None:
        try:
            async with client.stream("GET", url) as response:
                if response.status_code >= 400:
                    raise DownloadError(
                        f"Download of {url} failed: HTTP {response.status_code}"
                    )
                with open(target, "wb") as f:
                    async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                        f.write(chunk)
        except httpx.HTTPError as exc:
            raise DownloadError(f"Download of {url} failed: {exc}") from exc
        except OSError as exc:
            raise DownloadError(f"Cannot write download to {target}: {exc}") from exc


def _extract_tar(archive: Path, dest: Path) -> None:
    """Extract *archive* into a fresh *dest* directory.

    Members resolving outside *dest* (absolute paths, ``..``) are rejected
    by the ``data`` extraction filter.
    """
    try:
        if dest.exists():
            shutil.rmtree(dest)
        dest.mkdir(parents=True)
        with tarfile.open(archive, "r:gz") as tar:
            tar.extractall(dest, filter="data")
    except (tarfile.TarError, OSError) as exc:
        raise DownloadError(f"Cannot extract {archive.name}: {exc}") from exc


def find_bin_dir(dest: Path) -> Path:
    """Locate the ``bin`` directory of an extracted toolchain.

    Release archives either place ``bin/`` at the top level or wrap
    everything in a single versioned directory.
    """
    direct = dest / "bin"
    if direct.is_dir():
        return direct
    children = [p for p in dest.iterdir() if p.is_dir()]
    if len(children) == 1 and (children[0] / "bin").is_dir():
        return children[0] / "bin"
    raise DownloadError(f"No bin directory found in extracted archive at {dest}")


def export_search_path(bin_dirs: Sequence[Path]) -> None:
    """Publish *bin_dirs* to later workflow steps via ``$GITHUB_PATH``.

    This only appends to the file GitHub Actions reads between steps; the
    current process environment is left untouched. Outside Actions it is a
    no-op.
    """
    path_file = os.environ.get("GITHUB_PATH")
    if not path_file:
        return
    try:
        with open(path_file, "a", encoding="utf-8") as f:
            for d in bin_dirs:
                f.write(f"{d}{os.linesep}")
    except OSError as exc:
        raise DownloadError(f"Cannot update GITHUB_PATH file {path_file}: {exc}") from exc


async def install_toolchains(
    cache_dir: Path,
    specs: Sequence[ToolchainSpec] = DEFAULT_TOOLCHAINS,
    host: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> list[Path]:
    """Install *specs* concurrently and return the search path they provide.

    Raises:
        DownloadError: If any download or extraction fails.
    """
    installer = ToolchainInstaller(cache_dir, host=host, transport=transport)
    bin_dirs = await installer.install_all(specs)
    export_search_path(bin_dirs)
    return bin_dirs
