"""Splitting files into chunks for sending and reassembling received chunks.

A downloader stores each received chunk in the download directory as
``<name>-<chunk>``. Once chunk 0 is present, :func:`open_file` creates the
target file from it, and :func:`assemble_chunk` moves every further chunk
into place. :func:`save_file` closes the finished file.

The download directory defaults to the first usable of ``$XDG_DOWNLOAD_DIR``,
``~/dfd`` and the current working directory.
"""

from __future__ import annotations

import hashlib
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional

from dfdl.file_util import (
    bytes_in_file,
    delete_file,
    read_file,
    write_to_file,
    write_to_new_file,
)

DEFAULT_CHUNK_SIZE = 1024 * 1024
_HASH_BLOCK = 64 * 1024
_HASH_BYTES = 8


@dataclass
class _Settings:
    chunk_size: int = DEFAULT_CHUNK_SIZE
    download_dir: Optional[Path] = None


_settings = _Settings()
_lock = threading.Lock()


def set_chunk_size(size: int) -> None:
    """Set the chunk size in bytes; a size of 0 leaves it unchanged."""
    if size < 0:
        raise ValueError("chunk size must not be negative")
    if size == 0:
        return
    with _lock:
        _settings.chunk_size = size


def get_chunk_size() -> int:
    """Return the current chunk size in bytes."""
    with _lock:
        return _settings.chunk_size


def set_download_dir(f_path: str | os.PathLike) -> None:
    """Use ``f_path`` as the download directory, creating it if needed.

    Raises OSError if the directory cannot be created or verified.
    """
    path = Path(f_path).absolute()
    path.mkdir(parents=True, exist_ok=True)
    if not path.is_dir():
        raise NotADirectoryError(f"not a directory: {path}")
    with _lock:
        _settings.download_dir = path


def init_download_dir() -> Path:
    """Pick and set the default download directory and return it.

    Tries ``$XDG_DOWNLOAD_DIR``, then ``~/dfd``, then the current directory.
    Raises OSError if none of them is usable.
    """
    candidates = []
    xdg = os.environ.get("XDG_DOWNLOAD_DIR")
    if xdg:
        candidates.append(Path(xdg))
    try:
        candidates.append(Path.home() / "dfd")
    except RuntimeError:
        pass
    candidates.append(Path.cwd())

    for candidate in candidates:
        try:
            set_download_dir(candidate)
        except OSError:
            continue
        return get_download_dir()
    raise OSError("could not set up any download directory")


def get_download_dir() -> Path:
    """Return the download directory, choosing the default on first use."""
    with _lock:
        current = _settings.download_dir
    if current is None:
        return init_download_dir()
    return current


def file_size(f_path: str | os.PathLike) -> int:
    """Return the size of the file at ``f_path`` in bytes."""
    return bytes_in_file(f_path)


def file_chunks(f_size: int) -> int:
    """Return the number of chunks a file of ``f_size`` bytes splits into."""
    if f_size < 0:
        raise ValueError("file size must not be negative")
    size = get_chunk_size()
    return -(-f_size // size)


def package_file_chunk(f_path: str | os.PathLike, chunk: int) -> bytes:
    """Read chunk ``chunk`` (0-based) of the file at ``f_path``.

    Every chunk but the last holds exactly the chunk size in bytes.
    Raises ValueError if the file has no such chunk.
    """
    if chunk < 0:
        raise ValueError("chunk index must not be negative")
    size = get_chunk_size()
    total = max(file_chunks(file_size(f_path)), 1)
    if chunk >= total:
        raise ValueError(f"chunk {chunk} is past the end of {f_path}")
    return read_file(f_path, size, chunk * size)


def _check_name(f_name: str) -> None:
    if not f_name or f_name in (".", "..") or Path(f_name).name != f_name:
        raise ValueError(f"invalid file name: {f_name!r}")


def _chunk_path(f_name: str, chunk: int) -> Path:
    _check_name(f_name)
    return get_download_dir() / f"{f_name}-{chunk}"


def unpack_file_chunk(f_name: str, data: bytes, chunk: int) -> None:
    """Store received chunk ``chunk`` of ``f_name`` in the download directory."""
    if chunk < 0:
        raise ValueError("chunk index must not be negative")
    _chunk_path(f_name, chunk).write_bytes(bytes(data))


def open_file(f_name: str) -> BinaryIO:
    """Create ``f_name`` in the download directory from its stored chunk 0.

    Returns the file, open for writing further chunks. Raises
    FileNotFoundError if chunk 0 is missing and FileExistsError if the
    file already exists.
    """
    first = _chunk_path(f_name, 0)
    data = first.read_bytes()
    handle = write_to_new_file(get_download_dir() / f_name, data)
    delete_file(first)
    return handle


def assemble_chunk(file: BinaryIO, f_name: str, chunk: int) -> None:
    """Move stored chunk ``chunk`` of ``f_name`` into its place in ``file``."""
    path = _chunk_path(f_name, chunk)
    data = path.read_bytes()
    write_to_file(file, data, chunk * get_chunk_size())
    delete_file(path)


def save_file(file: BinaryIO) -> None:
    """Flush and close a file once all its chunks are assembled."""
    file.close()


def sha256_hash(f_path: str | os.PathLike) -> int:
    """Return the first eight bytes of the file's SHA-256 digest as an integer.

    Raises OSError if the file cannot be read.
    """
    digest = hashlib.sha256()
    with open(f_path, "rb") as handle:
        for block in iter(lambda: handle.read(_HASH_BLOCK), b""):
            digest.update(block)
    return int.from_bytes(digest.digest()[:_HASH_BYTES], "big")