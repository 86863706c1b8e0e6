"""SHA-256 checksums for release artifacts.

The checksum file holds the lowercase hex digest and nothing else: no
trailing newline, no file name. Re-hashing the artifact therefore
reproduces the file's content byte for byte.
"""

import hashlib
from pathlib import Path

from protobuild.exceptions import ChecksumError

HASH_ALGORITHM = "sha256"
CHECKSUM_SUFFIX = ".sha256"
HASH_BUFFER_SIZE = 65536  # 64 KiB


def hash_file(file_path: Path) -> str:
    """Compute the SHA-256 hex digest of a file.

    Raises:
        ChecksumError: If the file cannot be read.
    """
    hasher = hashlib.new(HASH_ALGORITHM)
    try:
        with open(file_path, "rb") as f:
            while True:
                chunk = f.read(HASH_BUFFER_SIZE)
                if not chunk:
                    break
                hasher.update(chunk)
    except OSError as exc:
        raise ChecksumError(f"Cannot hash {file_path}: {exc}") from exc
    return hasher.hexdigest()


def checksum_path_for(artifact: Path) -> Path:
    """Return the sibling checksum path, e.g. ``foo.wasm`` -> ``foo.wasm.sha256``."""
    return artifact.with_name(artifact.name + CHECKSUM_SUFFIX)


def write_checksum(artifact: Path) -> tuple[Path, str]:
    """Hash *artifact* and write the digest next to it.

    Returns:
        A ``(checksum_path, digest)`` tuple.

    Raises:
        ChecksumError: If the artifact cannot be read or the checksum file
            cannot be written.
    """
    digest = hash_file(artifact)
    path = checksum_path_for(artifact)
    try:
        path.write_text(digest, encoding="ascii")
    except OSError as exc:
        raise ChecksumError(f"Cannot write checksum file {path}: {exc}") from exc
    return path, digest
