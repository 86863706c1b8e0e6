"""Tests for protobuild.toolchain -- archive download and extraction."""

from __future__ import annotations

import asyncio
import io
import os
import tarfile
from pathlib import Path

import httpx
import pytest

from protobuild.exceptions import DownloadError
from protobuild.toolchain import (
    BINARYEN,
    WABT,
    export_search_path,
    find_bin_dir,
    install_toolchains,
)


def _tarball(files: dict[str, bytes]) -> bytes:
    """Build an in-memory .tar.gz containing *files*."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def _serve(routes: dict[str, bytes], seen: list[str] | None = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if seen is not None:
            seen.append(url)
        if url in routes:
            return httpx.Response(200, content=routes[url])
        return httpx.Response(404, content=b"Not Found")

    return httpx.MockTransport(handler)


def _release_routes(host: str = "linux") -> dict[str, bytes]:
    return {
        BINARYEN.url_for(host): _tarball(
            {"binaryen-version_116/bin/wasm-opt": b"#!/bin/sh\n"}
        ),
        WABT.url_for(host): _tarball({"wabt-1.0.34/bin/wasm-strip": b"#!/bin/sh\n"}),
    }


# ---------------------------------------------------------------------------
# URL templating
# ---------------------------------------------------------------------------


class TestToolchainUrls:
    def test_binaryen_linux(self) -> None:
        assert BINARYEN.url_for("linux") == (
            "https://github.com/WebAssembly/binaryen/releases/download/"
            "version_116/binaryen-version_116-x86_64-linux.tar.gz"
        )

    def test_wabt_linux_is_ubuntu(self) -> None:
        assert WABT.url_for("linux") == (
            "https://github.com/WebAssembly/wabt/releases/download/"
            "1.0.34/wabt-1.0.34-ubuntu.tar.gz"
        )

    @pytest.mark.parametrize(
        "host, binaryen, wabt",
        [
            ("darwin", "macos", "macos"),
            ("win32", "windows", "windows"),
            ("freebsd14", "linux", "ubuntu"),
        ],
    )
    def test_platform_mapping(self, host: str, binaryen: str, wabt: str) -> None:
        assert BINARYEN.platform_name(host) == binaryen
        assert WABT.platform_name(host) == wabt


# ---------------------------------------------------------------------------
# install_toolchains
# ---------------------------------------------------------------------------


class TestInstallToolchains:
    def test_installs_both_and_returns_bin_dirs(self, tmp_path: Path) -> None:
        seen: list[str] = []
        bin_dirs = asyncio.run(
            install_toolchains(
                tmp_path / "cache",
                host="linux",
                transport=_serve(_release_routes(), seen),
            )
        )
        assert bin_dirs == [
            tmp_path / "cache" / "wabt" / "wabt-1.0.34" / "bin",
            tmp_path / "cache" / "binaryen" / "binaryen-version_116" / "bin",
        ]
        assert (bin_dirs[0] / "wasm-strip").is_file()
        assert (bin_dirs[1] / "wasm-opt").is_file()
        assert sorted(seen) == sorted(_release_routes())

    def test_downloads_overlap(self, tmp_path: Path) -> None:
        routes = _release_routes()
        requested: list[str] = []
        both_requested = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            if len(requested) == len(routes):
                both_requested.set()
            await asyncio.wait_for(both_requested.wait(), timeout=2)
            return httpx.Response(200, content=routes[str(request.url)])

        bin_dirs = asyncio.run(
            install_toolchains(
                tmp_path / "cache", host="linux", transport=httpx.MockTransport(handler)
            )
        )
        assert len(bin_dirs) == 2
        assert sorted(requested) == sorted(routes)

    def test_reinstall_replaces_previous_copy(self, tmp_path: Path) -> None:
        stale = tmp_path / "cache" / "wabt" / "stale.txt"
        stale.parent.mkdir(parents=True)
        stale.write_text("old")
        asyncio.run(
            install_toolchains(tmp_path / "cache", host="linux", transport=_serve(_release_routes()))
        )
        assert not stale.exists()

    def test_does_not_touch_process_path(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("PATH", "/usr/bin")
        asyncio.run(
            install_toolchains(tmp_path / "cache", host="linux", transport=_serve(_release_routes()))
        )
        assert os.environ["PATH"] == "/usr/bin"

    def test_http_error_is_download_error(self, tmp_path: Path) -> None:
        routes = _release_routes()
        del routes[WABT.url_for("linux")]
        with pytest.raises(DownloadError, match="HTTP 404"):
            asyncio.run(install_toolchains(tmp_path / "cache", host="linux", transport=_serve(routes)))

    def test_network_error_is_download_error(self, tmp_path: Path) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(DownloadError, match="connection refused"):
            asyncio.run(
                install_toolchains(
                    tmp_path / "cache", host="linux", transport=httpx.MockTransport(handler)
                )
            )

    def test_corrupt_archive_is_download_error(self, tmp_path: Path) -> None:
        routes = {url: b"not a tarball" for url in _release_routes()}
        with pytest.raises(DownloadError, match="Cannot extract"):
            asyncio.run(install_toolchains(tmp_path / "cache", host="linux", transport=_serve(routes)))

    def test_path_traversal_rejected(self, tmp_path: Path) -> None:
        routes = _release_routes()
        routes[BINARYEN.url_for("linux")] = _tarball({"../escape/bin/wasm-opt": b"x"})
        with pytest.raises(DownloadError):
            asyncio.run(install_toolchains(tmp_path / "cache", host="linux", transport=_serve(routes)))
        assert not (tmp_path / "cache" / "escape").exists()

    def test_exports_github_path(self, tmp_path: Path, monkeypatch) -> None:
        path_file = tmp_path / "github_path"
        path_file.write_text("")
        monkeypatch.setenv("GITHUB_PATH", str(path_file))
        bin_dirs = asyncio.run(
            install_toolchains(tmp_path / "cache", host="linux", transport=_serve(_release_routes()))
        )
        assert path_file.read_text().split() == [str(d) for d in bin_dirs]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestFindBinDir:
    def test_top_level_bin(self, tmp_path: Path) -> None:
        (tmp_path / "bin").mkdir()
        assert find_bin_dir(tmp_path) == tmp_path / "bin"

    def test_wrapped_bin(self, tmp_path: Path) -> None:
        (tmp_path / "wabt-1.0.34" / "bin").mkdir(parents=True)
        assert find_bin_dir(tmp_path) == tmp_path / "wabt-1.0.34" / "bin"

    def test_no_bin(self, tmp_path: Path) -> None:
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()
        with pytest.raises(DownloadError, match="No bin directory"):
            find_bin_dir(tmp_path)


def test_export_search_path_noop_outside_actions(tmp_path: Path) -> None:
    export_search_path([tmp_path / "bin"])
    assert list(tmp_path.iterdir()) == []
